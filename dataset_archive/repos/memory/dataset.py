"""
Memory implementations of DatasetRepository and DataverseRepository.

Entities are stored as deep copies so that callers mutating a loaded
object do not change what is stored until they save it, the same way a
real persistence store behaves.
"""

import logging
from typing import Dict, Optional

from dataset_archive.domain import Dataset, Dataverse
from dataset_archive.errors import PersistenceConflictError
from dataset_archive.repositories import (
    DatasetRepository,
    DataverseRepository,
)

logger = logging.getLogger(__name__)


class MemoryDatasetRepository(DatasetRepository):
    """
    Memory implementation of DatasetRepository using a dictionary keyed by
    dataset_id, with revision-based optimistic concurrency.
    """

    def __init__(self) -> None:
        logger.debug("Initializing MemoryDatasetRepository")
        self._datasets: Dict[str, Dataset] = {}

    async def get(self, dataset_id: str) -> Optional[Dataset]:
        dataset = self._datasets.get(dataset_id)
        if dataset is None:
            logger.debug(
                "MemoryDatasetRepository: Dataset not found",
                extra={"dataset_id": dataset_id},
            )
            return None
        return dataset.model_copy(deep=True)

    async def save(self, dataset: Dataset) -> Dataset:
        stored = self._datasets.get(dataset.dataset_id)
        if stored is not None and stored.revision != dataset.revision:
            logger.warning(
                "MemoryDatasetRepository: Revision conflict",
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

        new_revision = (
            dataset.revision + 1 if stored is not None else dataset.revision
        )
        saved = dataset.model_copy(
            update={"revision": new_revision}, deep=True
        )
        self._datasets[dataset.dataset_id] = saved

        logger.info(
            "MemoryDatasetRepository: Dataset saved",
            extra={
                "dataset_id": dataset.dataset_id,
                "revision": new_revision,
                "state": saved.latest_version.state.value,
            },
        )
        return saved.model_copy(deep=True)


class MemoryDataverseRepository(DataverseRepository):
    """Memory implementation of DataverseRepository."""

    def __init__(self) -> None:
        logger.debug("Initializing MemoryDataverseRepository")
        self._dataverses: Dict[str, Dataverse] = {}
        self.save_count = 0

    async def get(self, dataverse_id: str) -> Optional[Dataverse]:
        dataverse = self._dataverses.get(dataverse_id)
        return dataverse.model_copy(deep=True) if dataverse else None

    async def save(self, dataverse: Dataverse) -> None:
        self._dataverses[dataverse.dataverse_id] = dataverse.model_copy(
            deep=True
        )
        self.save_count += 1
        logger.debug(
            "MemoryDataverseRepository: Dataverse saved",
            extra={
                "dataverse_id": dataverse.dataverse_id,
                "subjects": [s.str_value for s in dataverse.subjects],
            },
        )
