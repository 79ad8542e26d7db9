"""
Memory implementations of the small record repositories: dataset version
users, private URLs and the on-success failure log.
"""

import logging
from typing import Dict, List, Optional, Tuple

from dataset_archive.domain import DatasetVersionUser, PrivateUrl
from dataset_archive.repositories import (
    DatasetVersionUserRepository,
    OnSuccessFailureLogRepository,
    PrivateUrlRepository,
)

logger = logging.getLogger(__name__)


class MemoryDatasetVersionUserRepository(DatasetVersionUserRepository):
    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], DatasetVersionUser] = {}

    async def get(
        self, version_id: str, user_id: str
    ) -> Optional[DatasetVersionUser]:
        record = self._records.get((version_id, user_id))
        return record.model_copy() if record else None

    async def save(self, record: DatasetVersionUser) -> None:
        self._records[(record.version_id, record.user_id)] = (
            record.model_copy()
        )

    def all(self) -> List[DatasetVersionUser]:
        return list(self._records.values())


class MemoryPrivateUrlRepository(PrivateUrlRepository):
    def __init__(self) -> None:
        self._urls: Dict[str, PrivateUrl] = {}

    def add(self, private_url: PrivateUrl) -> None:
        self._urls[private_url.dataset_id] = private_url

    async def get(self, dataset_id: str) -> Optional[PrivateUrl]:
        return self._urls.get(dataset_id)

    async def delete(self, dataset_id: str) -> None:
        if self._urls.pop(dataset_id, None) is not None:
            logger.debug(
                "MemoryPrivateUrlRepository: Private URL deleted",
                extra={"dataset_id": dataset_id},
            )


class MemoryOnSuccessFailureLogRepository(OnSuccessFailureLogRepository):
    """Keeps (command, text) entries per dataset."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[Tuple[str, str]]] = {}

    async def write(self, command: str, text: str, dataset_id: str) -> None:
        self._entries.setdefault(dataset_id, []).append((command, text))
        logger.debug(
            "MemoryOnSuccessFailureLogRepository: Entry written",
            extra={"dataset_id": dataset_id, "command": command},
        )

    async def list_for_dataset(self, dataset_id: str) -> List[str]:
        return [
            f"{command}: {text}"
            for command, text in self._entries.get(dataset_id, [])
        ]
