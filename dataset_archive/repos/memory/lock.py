"""
Memory implementation of LockRepository.
"""

import logging
from typing import Dict, List

from dataset_archive.domain import DatasetLock, LockReason
from dataset_archive.errors import LockConflictError
from dataset_archive.repositories import LockRepository

logger = logging.getLogger(__name__)


class MemoryLockRepository(LockRepository):
    """
    Stores locks in a dictionary keyed by dataset_id, then by reason, so a
    dataset can never hold two locks with the same reason.
    """

    def __init__(self) -> None:
        logger.debug("Initializing MemoryLockRepository")
        self._locks: Dict[str, Dict[LockReason, DatasetLock]] = {}

    async def list_for_dataset(self, dataset_id: str) -> List[DatasetLock]:
        return [
            lock.model_copy()
            for lock in self._locks.get(dataset_id, {}).values()
        ]

    async def add(self, lock: DatasetLock) -> None:
        held = self._locks.setdefault(lock.dataset_id, {})
        if lock.reason in held:
            raise LockConflictError(
                f"Dataset {lock.dataset_id} is already locked for "
                f"{lock.reason.value}"
            )
        held[lock.reason] = lock.model_copy()
        logger.debug(
            "MemoryLockRepository: Lock added",
            extra={
                "dataset_id": lock.dataset_id,
                "reason": lock.reason.value,
            },
        )

    async def update(
        self, previous_reason: LockReason, lock: DatasetLock
    ) -> None:
        held = self._locks.get(lock.dataset_id, {})
        if previous_reason not in held:
            raise LockConflictError(
                f"Dataset {lock.dataset_id} holds no "
                f"{previous_reason.value} lock"
            )
        if lock.reason != previous_reason and lock.reason in held:
            raise LockConflictError(
                f"Dataset {lock.dataset_id} is already locked for "
                f"{lock.reason.value}"
            )
        del held[previous_reason]
        held[lock.reason] = lock.model_copy()

    async def remove(self, dataset_id: str, reason: LockReason) -> None:
        held = self._locks.get(dataset_id, {})
        if held.pop(reason, None) is not None:
            logger.debug(
                "MemoryLockRepository: Lock removed",
                extra={"dataset_id": dataset_id, "reason": reason.value},
            )
