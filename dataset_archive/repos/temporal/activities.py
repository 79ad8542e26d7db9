"""
Temporal activity wrapper classes for the archive repositories.

Each class subclasses a concrete MinIO or local repository and registers
its protocol methods as activities named ``{activity_base}.{method}``.
The worker instantiates them and registers their bound methods.
"""

from dataset_archive.repos.local.metadata_validator import (
    LocalMetadataValidatorRepository,
)
from dataset_archive.repos.local.settings import LocalSettingsRepository
from dataset_archive.repos.minio.dataset import (
    MinioDatasetRepository,
    MinioDataverseRepository,
)
from dataset_archive.repos.minio.lock import MinioLockRepository
from dataset_archive.repos.minio.outbox import (
    MinioNotificationRepository,
    MinioSearchIndexRepository,
)
from dataset_archive.repos.minio.records import (
    MinioDatasetVersionUserRepository,
    MinioOnSuccessFailureLogRepository,
    MinioPrivateUrlRepository,
    MinioRoleAssignmentRepository,
)
from dataset_archive.repos.minio.storage import MinioStorageRepository
from .activity_names import (
    DATASET_ACTIVITY_BASE,
    DATAVERSE_ACTIVITY_BASE,
    FAILURE_LOG_ACTIVITY_BASE,
    LOCK_ACTIVITY_BASE,
    METADATA_VALIDATOR_ACTIVITY_BASE,
    NOTIFICATION_ACTIVITY_BASE,
    PRIVATE_URL_ACTIVITY_BASE,
    ROLE_ASSIGNMENT_ACTIVITY_BASE,
    SEARCH_INDEX_ACTIVITY_BASE,
    SETTINGS_ACTIVITY_BASE,
    STORAGE_ACTIVITY_BASE,
    VERSION_USER_ACTIVITY_BASE,
)
from .decorators import temporal_activity_registration


@temporal_activity_registration(DATASET_ACTIVITY_BASE)
class TemporalMinioDatasetRepository(MinioDatasetRepository):
    pass


@temporal_activity_registration(DATAVERSE_ACTIVITY_BASE)
class TemporalMinioDataverseRepository(MinioDataverseRepository):
    pass


@temporal_activity_registration(LOCK_ACTIVITY_BASE)
class TemporalMinioLockRepository(MinioLockRepository):
    pass


@temporal_activity_registration(VERSION_USER_ACTIVITY_BASE)
class TemporalMinioDatasetVersionUserRepository(
    MinioDatasetVersionUserRepository
):
    pass


@temporal_activity_registration(PRIVATE_URL_ACTIVITY_BASE)
class TemporalMinioPrivateUrlRepository(MinioPrivateUrlRepository):
    pass


@temporal_activity_registration(ROLE_ASSIGNMENT_ACTIVITY_BASE)
class TemporalMinioRoleAssignmentRepository(MinioRoleAssignmentRepository):
    pass


@temporal_activity_registration(NOTIFICATION_ACTIVITY_BASE)
class TemporalMinioNotificationRepository(MinioNotificationRepository):
    pass


@temporal_activity_registration(SEARCH_INDEX_ACTIVITY_BASE)
class TemporalMinioSearchIndexRepository(MinioSearchIndexRepository):
    pass


@temporal_activity_registration(FAILURE_LOG_ACTIVITY_BASE)
class TemporalMinioOnSuccessFailureLogRepository(
    MinioOnSuccessFailureLogRepository
):
    pass


@temporal_activity_registration(STORAGE_ACTIVITY_BASE)
class TemporalMinioStorageRepository(MinioStorageRepository):
    pass


@temporal_activity_registration(METADATA_VALIDATOR_ACTIVITY_BASE)
class TemporalLocalMetadataValidatorRepository(
    LocalMetadataValidatorRepository
):
    pass


@temporal_activity_registration(SETTINGS_ACTIVITY_BASE)
class TemporalLocalSettingsRepository(LocalSettingsRepository):
    pass


__all__ = [
    "TemporalMinioDatasetRepository",
    "TemporalMinioDataverseRepository",
    "TemporalMinioLockRepository",
    "TemporalMinioDatasetVersionUserRepository",
    "TemporalMinioPrivateUrlRepository",
    "TemporalMinioRoleAssignmentRepository",
    "TemporalMinioNotificationRepository",
    "TemporalMinioSearchIndexRepository",
    "TemporalMinioOnSuccessFailureLogRepository",
    "TemporalMinioStorageRepository",
    "TemporalLocalMetadataValidatorRepository",
    "TemporalLocalSettingsRepository",
]
