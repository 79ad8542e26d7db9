"""
MinIO repository implementations.

Entities are stored as pydantic JSON documents, one object per entity.
Notifications and search-index requests go to outbox buckets.
"""

from .client import MinioClient, create_minio_client
from .dataset import MinioDatasetRepository, MinioDataverseRepository
from .lock import MinioLockRepository
from .outbox import MinioNotificationRepository, MinioSearchIndexRepository
from .records import (
    MinioDatasetVersionUserRepository,
    MinioOnSuccessFailureLogRepository,
    MinioPrivateUrlRepository,
    MinioRoleAssignmentRepository,
)
from .storage import MinioStorageRepository

__all__ = [
    "MinioClient",
    "create_minio_client",
    "MinioDatasetRepository",
    "MinioDataverseRepository",
    "MinioDatasetVersionUserRepository",
    "MinioLockRepository",
    "MinioNotificationRepository",
    "MinioOnSuccessFailureLogRepository",
    "MinioPrivateUrlRepository",
    "MinioRoleAssignmentRepository",
    "MinioSearchIndexRepository",
    "MinioStorageRepository",
]
