"""
Minio implementation of StorageRepository.

Files on ``s3`` storage drivers are read from the driver's bucket, with
the storage location as object name. Files on any other driver are
handed to the local filesystem repository.
"""

import asyncio
import logging

from minio.error import S3Error

from dataset_archive.checksums import CHUNK_SIZE, new_hasher
from dataset_archive.config import ArchiveSettings
from dataset_archive.domain import DataFile
from dataset_archive.repositories import StorageRepository
from dataset_archive.repos.local.storage import LocalStorageRepository
from .client import MinioClient, is_no_such_key

logger = logging.getLogger(__name__)


class MinioStorageRepository(StorageRepository):
    def __init__(self, client: MinioClient, settings: ArchiveSettings) -> None:
        self.client = client
        self.settings = settings
        self.local = LocalStorageRepository(settings)

    async def is_dataverse_accessible(self, driver_id: str) -> bool:
        return self.settings.is_dataverse_accessible(driver_id)

    def bucket_for(self, data_file: DataFile) -> str:
        driver = self.settings.storage_driver(data_file.driver_id)
        if driver is not None and driver.bucket_name:
            return driver.bucket_name
        return data_file.driver_id

    def _is_s3(self, data_file: DataFile) -> bool:
        driver = self.settings.storage_driver(data_file.driver_id)
        if driver is None:
            return data_file.driver_id == "s3"
        return driver.type == "s3"

    async def compute_checksum(self, data_file: DataFile) -> str:
        if not self._is_s3(data_file):
            return await self.local.compute_checksum(data_file)
        return await asyncio.to_thread(self._checksum_object, data_file)

    def _checksum_object(self, data_file: DataFile) -> str:
        bucket_name = self.bucket_for(data_file)
        object_name = data_file.storage_location
        logger.debug(
            "Computing checksum of Minio object",
            extra={
                "file_id": data_file.file_id,
                "bucket_name": bucket_name,
                "object_name": object_name,
            },
        )
        try:
            response = self.client.get_object(bucket_name, object_name)
        except S3Error as e:
            if is_no_such_key(e):
                raise FileNotFoundError(
                    f"No object {object_name} in bucket {bucket_name}"
                ) from e
            raise OSError(
                f"Failed to read {object_name} from {bucket_name}: {e}"
            ) from e

        hasher = new_hasher(data_file.checksum_type)
        try:
            for chunk in response.stream(CHUNK_SIZE):
                hasher.update(chunk)
        finally:
            response.close()
            response.release_conn()
        return hasher.hexdigest()
