"""
Local filesystem implementation of StorageRepository.

Serves ``file`` storage drivers: a file's storage location is resolved
against the driver's configured ``base_path``.
"""

import asyncio
import logging
from pathlib import Path

from dataset_archive.checksums import CHUNK_SIZE, checksum_of_chunks
from dataset_archive.config import ArchiveSettings
from dataset_archive.domain import DataFile
from dataset_archive.repositories import StorageRepository

logger = logging.getLogger(__name__)


class LocalStorageRepository(StorageRepository):
    def __init__(self, settings: ArchiveSettings) -> None:
        self.settings = settings

    async def is_dataverse_accessible(self, driver_id: str) -> bool:
        return self.settings.is_dataverse_accessible(driver_id)

    def resolve_path(self, data_file: DataFile) -> Path:
        driver = self.settings.storage_driver(data_file.driver_id)
        location = Path(data_file.storage_location)
        if driver is not None and driver.base_path:
            return Path(driver.base_path).expanduser() / location
        return location

    async def compute_checksum(self, data_file: DataFile) -> str:
        path = self.resolve_path(data_file)
        logger.debug(
            "Computing checksum of local file",
            extra={
                "file_id": data_file.file_id,
                "path": str(path),
                "checksum_type": data_file.checksum_type.value,
            },
        )
        return await asyncio.to_thread(self._checksum_file, path, data_file)

    def _checksum_file(self, path: Path, data_file: DataFile) -> str:
        with open(path, "rb") as f:
            return checksum_of_chunks(
                iter(lambda: f.read(CHUNK_SIZE), b""),
                data_file.checksum_type,
            )
