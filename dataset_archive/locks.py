"""
Lock registry: the named locks that make a dataset non-editable.

Locks are written through the LockRepository as soon as they change, so
the lock set is the only state shared between the kick-off and finalize
phases. The registry keeps the in-memory ``dataset.locks`` list in step
with what it writes.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .domain import Dataset, DatasetLock, LockReason, utc_now
from .errors import LockConflictError
from .repositories import LockRepository
from .validation import ensure_repository_protocol

logger = logging.getLogger(__name__)


class LockRegistry:
    """Adds, removes and queries locks for a dataset."""

    def __init__(
        self,
        lock_repo: LockRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.lock_repo = ensure_repository_protocol(lock_repo, LockRepository)
        self.clock = clock

    def new_lock(
        self,
        dataset: Dataset,
        reason: LockReason,
        user_id: str,
        info: str = "",
        workflow_invocation_id: Optional[str] = None,
    ) -> DatasetLock:
        """Build a lock stamped with the registry's clock."""
        return DatasetLock(
            dataset_id=dataset.dataset_id,
            reason=reason,
            user_id=user_id,
            info=info,
            workflow_invocation_id=workflow_invocation_id,
            created_at=self.clock(),
        )

    async def add(self, dataset: Dataset, lock: DatasetLock) -> DatasetLock:
        """Install a lock; at most one lock per reason may be held.

        Raises:
            LockConflictError: if the dataset already holds ``lock.reason``
        """
        if dataset.is_locked_for(lock.reason):
            raise LockConflictError(
                f"Dataset {dataset.dataset_id} is already locked for "
                f"{lock.reason.value}"
            )

        await self.lock_repo.add(lock)
        dataset.locks.append(lock)

        logger.info(
            "Dataset lock added",
            extra={
                "dataset_id": dataset.dataset_id,
                "reason": lock.reason.value,
                "user_id": lock.user_id,
                "workflow_invocation_id": lock.workflow_invocation_id,
            },
        )
        return lock

    async def remove(self, dataset: Dataset, reason: LockReason) -> None:
        """Remove the lock held for reason; removing an absent lock is fine."""
        await self.lock_repo.remove(dataset.dataset_id, reason)
        held = len(dataset.locks)
        dataset.locks = [
            lock for lock in dataset.locks if lock.reason != reason
        ]
        if len(dataset.locks) != held:
            logger.info(
                "Dataset lock removed",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "reason": reason.value,
                },
            )

    async def update(
        self,
        dataset: Dataset,
        previous_reason: LockReason,
        reason: LockReason,
        info: str,
    ) -> DatasetLock:
        """Replace reason and info of an existing lock in one write."""
        current = dataset.get_lock_for(previous_reason)
        if current is None:
            raise LockConflictError(
                f"Dataset {dataset.dataset_id} holds no "
                f"{previous_reason.value} lock to update"
            )
        if reason != previous_reason and dataset.is_locked_for(reason):
            raise LockConflictError(
                f"Dataset {dataset.dataset_id} is already locked for "
                f"{reason.value}"
            )

        updated = current.model_copy(update={"reason": reason, "info": info})
        await self.lock_repo.update(previous_reason, updated)
        dataset.locks = [
            updated if lock.reason == previous_reason else lock
            for lock in dataset.locks
        ]

        logger.info(
            "Dataset lock updated",
            extra={
                "dataset_id": dataset.dataset_id,
                "previous_reason": previous_reason.value,
                "reason": reason.value,
            },
        )
        return updated

    def is_locked_for(self, dataset: Dataset, reason: LockReason) -> bool:
        return dataset.is_locked_for(reason)

    def get_lock(
        self, dataset: Dataset, reason: LockReason
    ) -> Optional[DatasetLock]:
        return dataset.get_lock_for(reason)

    def is_matching_workflow_lock(
        self,
        dataset: Dataset,
        user_identifier: str,
        invocation_id: Optional[str],
    ) -> bool:
        """True if the caller is the workflow run that holds the lock."""
        lock = dataset.get_lock_for(LockReason.WORKFLOW)
        if lock is None or invocation_id is None:
            return False
        return (
            lock.workflow_invocation_id == invocation_id
            and lock.user_id == user_identifier.lstrip("@")
        )

    async def refresh(self, dataset: Dataset) -> Dataset:
        """Reload the dataset's lock set from durable storage."""
        dataset.locks = await self.lock_repo.list_for_dataset(
            dataset.dataset_id
        )
        return dataset
