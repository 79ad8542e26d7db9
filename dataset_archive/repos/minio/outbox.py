"""
Minio outbox implementations of NotificationRepository and
SearchIndexRepository.

Notifications and indexing requests are written as JSON objects to
outbox buckets. The mailer and the search indexer consume those buckets
on their own schedule, so a write here is the whole of the request.
"""

import logging
import uuid

from pydantic import BaseModel, Field

from dataset_archive.domain import UserNotification, utc_now
from dataset_archive.repositories import (
    NotificationRepository,
    SearchIndexRepository,
)
from .client import MinioClient, MinioRepositoryMixin

logger = logging.getLogger(__name__)


class IndexRequest(BaseModel):
    object_type: str
    object_id: str
    requested_at: str = Field(default_factory=lambda: utc_now().isoformat())


class MinioNotificationRepository(
    NotificationRepository, MinioRepositoryMixin
):
    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "notification-outbox"
        self.ensure_buckets_exist([self.bucket_name])

    async def send_notification(self, notification: UserNotification) -> None:
        object_name = f"{notification.user_id}/{uuid.uuid4()}"
        self.put_json_object(
            self.bucket_name,
            object_name,
            notification,
            extra_log_data={
                "user_id": notification.user_id,
                "type": notification.type.value,
                "object_id": notification.object_id,
            },
        )
        logger.info(
            "MinioNotificationRepository: Notification queued",
            extra={
                "user_id": notification.user_id,
                "type": notification.type.value,
            },
        )


class MinioSearchIndexRepository(SearchIndexRepository, MinioRepositoryMixin):
    """Queues index requests, one object per indexed entity."""

    def __init__(self, client: MinioClient) -> None:
        self.client = client
        self.bucket_name = "search-index-queue"
        self.ensure_buckets_exist([self.bucket_name])

    async def index_dataset(self, dataset_id: str) -> None:
        self._enqueue("dataset", dataset_id)

    async def index_dataverse(self, dataverse_id: str) -> None:
        self._enqueue("dataverse", dataverse_id)

    def _enqueue(self, object_type: str, object_id: str) -> None:
        # Re-queueing overwrites the pending request for the same entity.
        request = IndexRequest(object_type=object_type, object_id=object_id)
        self.put_json_object(
            self.bucket_name,
            f"{object_type}/{object_id}",
            request,
            extra_log_data={
                "object_type": object_type,
                "object_id": object_id,
            },
        )
