"""In-memory implementations of the archive repositories."""

from .dataset import MemoryDatasetRepository, MemoryDataverseRepository
from .lock import MemoryLockRepository
from .notification import (
    MemoryNotificationRepository,
    MemorySearchIndexRepository,
)
from .permissions import MemoryRoleAssignmentRepository
from .records import (
    MemoryDatasetVersionUserRepository,
    MemoryOnSuccessFailureLogRepository,
    MemoryPrivateUrlRepository,
)
from .storage import MemoryStorageRepository
from .workflow import (
    MemoryFinalizeDispatcher,
    MemoryMetadataValidatorRepository,
    MemorySettingsRepository,
    MemoryWorkflowEngineRepository,
)

__all__ = [
    "MemoryDatasetRepository",
    "MemoryDataverseRepository",
    "MemoryDatasetVersionUserRepository",
    "MemoryFinalizeDispatcher",
    "MemoryLockRepository",
    "MemoryMetadataValidatorRepository",
    "MemoryNotificationRepository",
    "MemoryOnSuccessFailureLogRepository",
    "MemoryPrivateUrlRepository",
    "MemoryRoleAssignmentRepository",
    "MemorySearchIndexRepository",
    "MemorySettingsRepository",
    "MemoryStorageRepository",
    "MemoryWorkflowEngineRepository",
]
