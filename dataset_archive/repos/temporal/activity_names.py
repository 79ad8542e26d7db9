"""
Activity name bases shared by activities.py and proxies.py.

Kept apart from both so the workflow proxies can import them without
pulling the MinIO and subprocess backends into the workflow sandbox.
"""

DATASET_ACTIVITY_BASE = "archive.dataset_repo.minio"
DATAVERSE_ACTIVITY_BASE = "archive.dataverse_repo.minio"
LOCK_ACTIVITY_BASE = "archive.lock_repo.minio"
VERSION_USER_ACTIVITY_BASE = "archive.version_user_repo.minio"
PRIVATE_URL_ACTIVITY_BASE = "archive.private_url_repo.minio"
ROLE_ASSIGNMENT_ACTIVITY_BASE = "archive.role_assignment_repo.minio"
NOTIFICATION_ACTIVITY_BASE = "archive.notification_repo.minio"
SEARCH_INDEX_ACTIVITY_BASE = "archive.search_index_repo.minio"
FAILURE_LOG_ACTIVITY_BASE = "archive.failure_log_repo.minio"
STORAGE_ACTIVITY_BASE = "archive.storage_repo.minio"
METADATA_VALIDATOR_ACTIVITY_BASE = "archive.metadata_validator_repo.local"
SETTINGS_ACTIVITY_BASE = "archive.settings_repo.local"

__all__ = [
    "DATASET_ACTIVITY_BASE",
    "DATAVERSE_ACTIVITY_BASE",
    "LOCK_ACTIVITY_BASE",
    "VERSION_USER_ACTIVITY_BASE",
    "PRIVATE_URL_ACTIVITY_BASE",
    "ROLE_ASSIGNMENT_ACTIVITY_BASE",
    "NOTIFICATION_ACTIVITY_BASE",
    "SEARCH_INDEX_ACTIVITY_BASE",
    "FAILURE_LOG_ACTIVITY_BASE",
    "STORAGE_ACTIVITY_BASE",
    "METADATA_VALIDATOR_ACTIVITY_BASE",
    "SETTINGS_ACTIVITY_BASE",
]
