"""
Memory implementation of StorageRepository.

Physical file bytes are kept in a dictionary keyed by storage identifier.
Driver accessibility follows the storage driver configuration of the
settings the repository was built with.
"""

import logging
from typing import Dict, Optional

from dataset_archive.checksums import checksum_of_bytes
from dataset_archive.config import ArchiveSettings
from dataset_archive.domain import DataFile
from dataset_archive.repositories import StorageRepository

logger = logging.getLogger(__name__)


class MemoryStorageRepository(StorageRepository):
    def __init__(self, settings: Optional[ArchiveSettings] = None) -> None:
        self.settings = settings or ArchiveSettings()
        self._objects: Dict[str, bytes] = {}
        self.reads: Dict[str, int] = {}

    def put(self, storage_identifier: str, data: bytes) -> None:
        self._objects[storage_identifier] = data

    async def is_dataverse_accessible(self, driver_id: str) -> bool:
        return self.settings.is_dataverse_accessible(driver_id)

    async def compute_checksum(self, data_file: DataFile) -> str:
        data = self._objects.get(data_file.storage_identifier)
        if data is None:
            raise FileNotFoundError(
                f"No stored object for {data_file.storage_identifier}"
            )
        self.reads[data_file.file_id] = (
            self.reads.get(data_file.file_id, 0) + 1
        )
        return checksum_of_bytes(data, data_file.checksum_type)
