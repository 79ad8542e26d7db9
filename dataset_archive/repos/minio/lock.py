"""
Minio implementation of LockRepository.

Each lock is one JSON object named ``{dataset_id}/{reason}`` in the
"dataset-locks" bucket, so a dataset holds at most one lock per reason.
"""

import logging
from typing import List

from dataset_archive.domain import DatasetLock, LockReason
from dataset_archive.errors import LockConflictError
from dataset_archive.repositories import LockRepository
from .client import MinioClient, MinioRepositoryMixin

logger = logging.getLogger(__name__)


def lock_object_name(dataset_id: str, reason: LockReason) -> str:
    return f"{dataset_id}/{reason.value}"


class MinioLockRepository(LockRepository, MinioRepositoryMixin):
    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "dataset-locks"
        self.ensure_buckets_exist([self.bucket_name])

    async def list_for_dataset(self, dataset_id: str) -> List[DatasetLock]:
        locks = self.list_json_objects(
            self.bucket_name, f"{dataset_id}/", DatasetLock
        )
        return sorted(locks, key=lambda lock: lock.created_at)

    async def add(self, lock: DatasetLock) -> None:
        name = lock_object_name(lock.dataset_id, lock.reason)
        if self.object_exists(self.bucket_name, name):
            raise LockConflictError(
                f"Dataset {lock.dataset_id} is already locked for "
                f"{lock.reason.value}"
            )
        self.put_json_object(
            self.bucket_name,
            name,
            lock,
            extra_log_data={
                "dataset_id": lock.dataset_id,
                "reason": lock.reason.value,
            },
        )
        logger.info(
            "MinioLockRepository: Lock added",
            extra={
                "dataset_id": lock.dataset_id,
                "reason": lock.reason.value,
                "user_id": lock.user_id,
            },
        )

    async def update(
        self, previous_reason: LockReason, lock: DatasetLock
    ) -> None:
        previous_name = lock_object_name(lock.dataset_id, previous_reason)
        if not self.object_exists(self.bucket_name, previous_name):
            raise LockConflictError(
                f"Dataset {lock.dataset_id} holds no "
                f"{previous_reason.value} lock"
            )
        name = lock_object_name(lock.dataset_id, lock.reason)
        if name != previous_name and self.object_exists(
            self.bucket_name, name
        ):
            raise LockConflictError(
                f"Dataset {lock.dataset_id} is already locked for "
                f"{lock.reason.value}"
            )
        # New lock first, then the old one goes; the dataset stays locked.
        self.put_json_object(self.bucket_name, name, lock)
        if name != previous_name:
            self.remove_object(self.bucket_name, previous_name)
        logger.info(
            "MinioLockRepository: Lock updated",
            extra={
                "dataset_id": lock.dataset_id,
                "previous_reason": previous_reason.value,
                "reason": lock.reason.value,
            },
        )

    async def remove(self, dataset_id: str, reason: LockReason) -> None:
        self.remove_object(
            self.bucket_name, lock_object_name(dataset_id, reason)
        )
        logger.info(
            "MinioLockRepository: Lock removed",
            extra={"dataset_id": dataset_id, "reason": reason.value},
        )
