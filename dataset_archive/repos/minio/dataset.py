"""
Minio implementations of DatasetRepository and DataverseRepository.

Datasets and dataverses are stored as JSON objects named by their id in
the "datasets" and "dataverses" buckets. Locks are not part of the stored
dataset document; they live in MinioLockRepository.
"""

import logging
from typing import Optional

from dataset_archive.domain import Dataset, Dataverse
from dataset_archive.errors import PersistenceConflictError
from dataset_archive.repositories import (
    DatasetRepository,
    DataverseRepository,
)
from .client import MinioClient, MinioRepositoryMixin

logger = logging.getLogger(__name__)


class MinioDatasetRepository(DatasetRepository, MinioRepositoryMixin):
    """
    Minio implementation of DatasetRepository.

    Saves compare the stored revision with the revision the caller loaded
    and refuse to overwrite a newer document.
    """

    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "datasets"
        self.ensure_buckets_exist([self.bucket_name])

    async def get(self, dataset_id: str) -> Optional[Dataset]:
        return self.get_json_object(
            self.bucket_name,
            dataset_id,
            Dataset,
            extra_log_data={"dataset_id": dataset_id},
        )

    async def save(self, dataset: Dataset) -> Dataset:
        stored = self.get_json_object(
            self.bucket_name, dataset.dataset_id, Dataset
        )
        if stored is not None and stored.revision != dataset.revision:
            logger.warning(
                "MinioDatasetRepository: Revision conflict",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "stored_revision": stored.revision,
                    "revision": dataset.revision,
                },
            )
            raise PersistenceConflictError(
                f"Dataset {dataset.dataset_id} was modified concurrently "
                f"(stored revision {stored.revision}, "
                f"loaded revision {dataset.revision})"
            )

        saved = dataset.model_copy(
            update={
                "revision": (
                    dataset.revision + 1
                    if stored is not None
                    else dataset.revision
                ),
                "locks": [],
            }
        )
        self.put_json_object(
            self.bucket_name,
            saved.dataset_id,
            saved,
            extra_log_data={
                "dataset_id": saved.dataset_id,
                "revision": saved.revision,
            },
        )
        logger.info(
            "MinioDatasetRepository: Dataset saved",
            extra={
                "dataset_id": saved.dataset_id,
                "revision": saved.revision,
                "state": saved.latest_version.state.value,
            },
        )
        return saved


class MinioDataverseRepository(DataverseRepository, MinioRepositoryMixin):
    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "dataverses"
        self.ensure_buckets_exist([self.bucket_name])

    async def get(self, dataverse_id: str) -> Optional[Dataverse]:
        return self.get_json_object(
            self.bucket_name,
            dataverse_id,
            Dataverse,
            extra_log_data={"dataverse_id": dataverse_id},
        )

    async def save(self, dataverse: Dataverse) -> None:
        self.put_json_object(
            self.bucket_name,
            dataverse.dataverse_id,
            dataverse,
            extra_log_data={"dataverse_id": dataverse.dataverse_id},
        )
