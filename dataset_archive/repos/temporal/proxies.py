"""
Workflow-side proxies for the archive repositories.

These classes are used *inside* Temporal workflows. Every protocol method
executes the matching activity, so use cases keep their plain repository
dependencies while the workflow stays deterministic.
"""

from dataset_archive.repositories import (
    DatasetRepository,
    DatasetVersionUserRepository,
    DataverseRepository,
    LockRepository,
    MetadataValidatorRepository,
    NotificationRepository,
    OnSuccessFailureLogRepository,
    PrivateUrlRepository,
    RoleAssignmentRepository,
    SearchIndexRepository,
    SettingsRepository,
    StorageRepository,
)
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
from .decorators import temporal_workflow_proxy


@temporal_workflow_proxy(
    DATASET_ACTIVITY_BASE,
    default_timeout_seconds=10,
    # A retried save would fail its own revision check.
    fail_fast_methods=["save"],
)
class WorkflowDatasetRepositoryProxy(DatasetRepository):
    """
    Workflow implementation of DatasetRepository that calls activities.
    """

    pass


@temporal_workflow_proxy(DATAVERSE_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowDataverseRepositoryProxy(DataverseRepository):
    pass


@temporal_workflow_proxy(
    LOCK_ACTIVITY_BASE,
    default_timeout_seconds=10,
    fail_fast_methods=["add", "update"],
)
class WorkflowLockRepositoryProxy(LockRepository):
    """
    Workflow implementation of LockRepository that calls activities.
    Lock writes are durable as soon as the activity completes.
    """

    pass


@temporal_workflow_proxy(
    VERSION_USER_ACTIVITY_BASE, default_timeout_seconds=10
)
class WorkflowDatasetVersionUserRepositoryProxy(DatasetVersionUserRepository):
    pass


@temporal_workflow_proxy(PRIVATE_URL_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowPrivateUrlRepositoryProxy(PrivateUrlRepository):
    pass


@temporal_workflow_proxy(
    ROLE_ASSIGNMENT_ACTIVITY_BASE, default_timeout_seconds=10
)
class WorkflowRoleAssignmentRepositoryProxy(RoleAssignmentRepository):
    pass


@temporal_workflow_proxy(
    NOTIFICATION_ACTIVITY_BASE,
    default_timeout_seconds=10,
    fail_fast_methods=["send_notification"],
)
class WorkflowNotificationRepositoryProxy(NotificationRepository):
    pass


@temporal_workflow_proxy(
    SEARCH_INDEX_ACTIVITY_BASE, default_timeout_seconds=10
)
class WorkflowSearchIndexRepositoryProxy(SearchIndexRepository):
    pass


@temporal_workflow_proxy(FAILURE_LOG_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowOnSuccessFailureLogRepositoryProxy(
    OnSuccessFailureLogRepository
):
    pass


@temporal_workflow_proxy(
    STORAGE_ACTIVITY_BASE,
    default_timeout_seconds=10,
    fail_fast_methods=["compute_checksum"],
    method_timeouts={"compute_checksum": 3600},
)
class WorkflowStorageRepositoryProxy(StorageRepository):
    """
    Workflow implementation of StorageRepository. Checksums of large
    files may take long; a failed read is reported, not retried.
    """

    pass


@temporal_workflow_proxy(
    METADATA_VALIDATOR_ACTIVITY_BASE,
    default_timeout_seconds=120,
    fail_fast_methods=["validate"],
)
class WorkflowMetadataValidatorRepositoryProxy(MetadataValidatorRepository):
    pass


@temporal_workflow_proxy(SETTINGS_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowSettingsRepositoryProxy(SettingsRepository):
    pass


__all__ = [
    "WorkflowDatasetRepositoryProxy",
    "WorkflowDataverseRepositoryProxy",
    "WorkflowLockRepositoryProxy",
    "WorkflowDatasetVersionUserRepositoryProxy",
    "WorkflowPrivateUrlRepositoryProxy",
    "WorkflowRoleAssignmentRepositoryProxy",
    "WorkflowNotificationRepositoryProxy",
    "WorkflowSearchIndexRepositoryProxy",
    "WorkflowOnSuccessFailureLogRepositoryProxy",
    "WorkflowStorageRepositoryProxy",
    "WorkflowMetadataValidatorRepositoryProxy",
    "WorkflowSettingsRepositoryProxy",
]
