"""
Memory implementations of NotificationRepository and SearchIndexRepository.

Both record what they were asked to do. Tests can make them fail on
demand to exercise the best-effort fan-out.
"""

import logging
from typing import List, Optional, Set

from dataset_archive.domain import UserNotification
from dataset_archive.repositories import (
    NotificationRepository,
    SearchIndexRepository,
)

logger = logging.getLogger(__name__)


class MemoryNotificationRepository(NotificationRepository):
    def __init__(
        self,
        fail_with: Optional[Exception] = None,
        failing_user_ids: Optional[Set[str]] = None,
    ) -> None:
        self.sent: List[UserNotification] = []
        self.fail_with = fail_with
        self.failing_user_ids = failing_user_ids or set()

    async def send_notification(self, notification: UserNotification) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        if notification.user_id in self.failing_user_ids:
            raise OSError(f"Mailbox of {notification.user_id} unavailable")
        self.sent.append(notification)
        logger.debug(
            "MemoryNotificationRepository: Notification sent",
            extra={
                "user_id": notification.user_id,
                "type": notification.type.value,
                "object_id": notification.object_id,
            },
        )


class MemorySearchIndexRepository(SearchIndexRepository):
    def __init__(
        self,
        failing_dataverse_ids: Optional[Set[str]] = None,
        fail_dataset_indexing: bool = False,
    ) -> None:
        self.indexed_datasets: List[str] = []
        self.indexed_dataverses: List[str] = []
        self.failing_dataverse_ids = failing_dataverse_ids or set()
        self.fail_dataset_indexing = fail_dataset_indexing

    async def index_dataset(self, dataset_id: str) -> None:
        if self.fail_dataset_indexing:
            raise OSError(f"Search index unavailable for {dataset_id}")
        self.indexed_datasets.append(dataset_id)

    async def index_dataverse(self, dataverse_id: str) -> None:
        if dataverse_id in self.failing_dataverse_ids:
            raise OSError(f"Search index unavailable for {dataverse_id}")
        self.indexed_dataverses.append(dataverse_id)
