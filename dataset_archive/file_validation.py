"""
Checksum validation of a dataset's physical files.

Each file is re-read through the StorageRepository and its checksum is
compared to the stored value. A failure leaves the dataset with a
FileValidationFailed lock: the finalizePublication lock is converted in
place when present, otherwise a new lock is installed for the caller.
"""

import logging
from typing import Dict, List, Optional

from .config import UNLIMITED, ArchiveSettings
from .domain import (
    FILE_VALIDATION_ERROR,
    ArchiveRequest,
    DataFile,
    Dataset,
    LockReason,
)
from .errors import FileValidationFailedError
from .locks import LockRegistry
from .repositories import StorageRepository
from .validation import ensure_repository_protocol

logger = logging.getLogger(__name__)

FILE_VALIDATION_FAILED_MESSAGE = (
    "The dataset could not be archived because one or more of its data "
    "files are missing or failed checksum validation. Please contact "
    "support to address this."
)


def download_size(dataset: Dataset) -> int:
    """Total size of the files that make up the latest version."""
    version_id = dataset.latest_version.version_id
    return sum(
        data_file.filesize
        for data_file in dataset.files
        if data_file.file_metadata is None
        or data_file.file_metadata.version_id == version_id
    )


def within_limit(size: int, limit: int) -> bool:
    return limit == UNLIMITED or size < limit


class FileChecksumValidator:
    """Recomputes file checksums under configurable size limits."""

    def __init__(
        self,
        storage_repo: StorageRepository,
        locks: LockRegistry,
        command: str,
    ) -> None:
        self.storage_repo = ensure_repository_protocol(
            storage_repo, StorageRepository
        )
        self.locks = locks
        self.command = command

    async def validate(
        self,
        dataset: Dataset,
        settings: ArchiveSettings,
        request: ArchiveRequest,
    ) -> List[str]:
        """Validate every eligible file and return the ids checked.

        Raises:
            FileValidationFailedError: after locking the dataset, when any
                eligible file is unreadable or its checksum differs
        """
        max_dataset_size = settings.dataset_validation_size_limit
        max_file_size = settings.file_validation_size_limit

        dataset_size = download_size(dataset)
        if not within_limit(dataset_size, max_dataset_size):
            logger.info(
                "Checksum Validation skipped for this dataset: "
                f"{dataset.dataset_id}, because of the size of the dataset "
                f"limit (set to {max_dataset_size} ); ",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "dataset_size": dataset_size,
                },
            )
            return []

        checked: List[str] = []
        failures: Dict[str, str] = {}
        for data_file in dataset.files:
            accessible = await self.storage_repo.is_dataverse_accessible(
                data_file.driver_id
            )
            if not (
                accessible and within_limit(data_file.filesize, max_file_size)
            ):
                logger.info(
                    "Checksum Validation skipped for this datafile: "
                    f"{data_file.file_id}, because of the size of the "
                    f"datafile limit (set to {max_file_size} ); ",
                    extra={
                        "dataset_id": dataset.dataset_id,
                        "file_id": data_file.file_id,
                        "driver_id": data_file.driver_id,
                        "accessible": accessible,
                    },
                )
                continue

            problem = await self._check_file(data_file)
            checked.append(data_file.file_id)
            if problem is not None:
                failures[data_file.file_id] = problem

        if failures:
            logger.error(
                "Checksum validation failed",
                extra={"dataset_id": dataset.dataset_id, "failures": failures},
            )
            await self._lock_for_failure(dataset, request)
            raise FileValidationFailedError(
                FILE_VALIDATION_FAILED_MESSAGE,
                self.command,
                failed_file_ids=list(failures),
            )

        logger.info(
            "Checksum validation passed",
            extra={"dataset_id": dataset.dataset_id, "checked": checked},
        )
        return checked

    async def _check_file(self, data_file: DataFile) -> Optional[str]:
        """Return a description of what is wrong with the file, if anything."""
        if not data_file.checksum_value:
            logger.warning(
                "Data file has no stored checksum",
                extra={"file_id": data_file.file_id},
            )
            return "no checksum recorded"

        try:
            recomputed = await self.storage_repo.compute_checksum(data_file)
        except Exception as e:
            logger.warning(
                "Could not read data file for checksum validation",
                extra={
                    "file_id": data_file.file_id,
                    "storage_identifier": data_file.storage_identifier,
                    "error": str(e),
                },
                exc_info=True,
            )
            return f"unreadable: {e}"

        if recomputed.lower() != data_file.checksum_value.lower():
            logger.warning(
                "Checksum mismatch",
                extra={
                    "file_id": data_file.file_id,
                    "checksum_type": data_file.checksum_type.value,
                    "expected": data_file.checksum_value,
                    "actual": recomputed,
                },
            )
            return "checksum mismatch"
        return None

    async def _lock_for_failure(
        self, dataset: Dataset, request: ArchiveRequest
    ) -> None:
        if self.locks.is_locked_for(dataset, LockReason.FINALIZE_PUBLICATION):
            await self.locks.update(
                dataset,
                LockReason.FINALIZE_PUBLICATION,
                LockReason.FILE_VALIDATION_FAILED,
                FILE_VALIDATION_ERROR,
            )
        elif not self.locks.is_locked_for(
            dataset, LockReason.FILE_VALIDATION_FAILED
        ):
            await self.locks.add(
                dataset,
                self.locks.new_lock(
                    dataset,
                    LockReason.FILE_VALIDATION_FAILED,
                    request.user.user_id,
                    FILE_VALIDATION_ERROR,
                ),
            )
