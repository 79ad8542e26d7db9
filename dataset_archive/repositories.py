"""
Repository protocols for the archive engine.

Every external collaborator of the engine (persistence, search index,
notification transport, storage access, validator executable, workflow
engine, configuration store, permission service) is described here as a
runtime-checkable Protocol. Use cases depend only on these protocols.

All repository operations follow the same principles:

- **Idempotency**: repeating a call with the same arguments is safe.
  Removing an absent lock, re-indexing a dataverse, or saving an unchanged
  entity has no further effect.

- **Workflow Safety**: inside Temporal workflows these protocols are
  implemented by proxies that delegate to activities, so use cases must
  call them with positional arguments only.

- **Domain Objects**: methods accept and return domain objects or
  primitives, never framework-specific types.
"""

from typing import List, Optional, Protocol, runtime_checkable

from .config import ArchiveSettings
from .domain import (
    ArchiveRequest,
    DataFile,
    Dataset,
    DatasetLock,
    DatasetVersionUser,
    Dataverse,
    LockReason,
    PrivateUrl,
    RoleAssignment,
    TriggerType,
    UserNotification,
    WorkflowContext,
    WorkflowDefinition,
)


@runtime_checkable
class DatasetRepository(Protocol):
    """Loads and saves the dataset aggregate."""

    async def get(self, dataset_id: str) -> Optional[Dataset]:
        """Retrieve a dataset with its versions and files.

        Returns None when the dataset does not exist. The lock list of the
        returned dataset may be stale; LockRegistry.refresh reloads it.
        """
        ...

    async def save(self, dataset: Dataset) -> Dataset:
        """Merge and flush the dataset; return the stored copy.

        Implementation Notes:
        - The stored revision must equal ``dataset.revision``; otherwise
          PersistenceConflictError is raised and nothing is written.
        - The returned dataset carries the incremented revision.
        - Locks are not written by this method; see LockRepository.
        """
        ...


@runtime_checkable
class DataverseRepository(Protocol):
    """Loads and saves dataverse containers."""

    async def get(self, dataverse_id: str) -> Optional[Dataverse]:
        ...

    async def save(self, dataverse: Dataverse) -> None:
        ...


@runtime_checkable
class LockRepository(Protocol):
    """Durable storage of dataset locks.

    Lock state written here is visible to every other actor as soon as the
    call returns.
    """

    async def list_for_dataset(self, dataset_id: str) -> List[DatasetLock]:
        ...

    async def add(self, lock: DatasetLock) -> None:
        """Persist a new lock.

        Raises LockConflictError if the dataset already holds a lock with
        the same reason.
        """
        ...

    async def update(
        self, previous_reason: LockReason, lock: DatasetLock
    ) -> None:
        """Replace reason and info of the lock held for previous_reason."""
        ...

    async def remove(self, dataset_id: str, reason: LockReason) -> None:
        """Remove the lock for reason; a no-op when absent."""
        ...


@runtime_checkable
class DatasetVersionUserRepository(Protocol):
    async def get(
        self, version_id: str, user_id: str
    ) -> Optional[DatasetVersionUser]:
        ...

    async def save(self, record: DatasetVersionUser) -> None:
        ...


@runtime_checkable
class PrivateUrlRepository(Protocol):
    async def get(self, dataset_id: str) -> Optional[PrivateUrl]:
        ...

    async def delete(self, dataset_id: str) -> None:
        ...


@runtime_checkable
class RoleAssignmentRepository(Protocol):
    """Read access to the permission service."""

    async def role_assignments(self, object_id: str) -> List[RoleAssignment]:
        """Assignments effective on the object, including inherited ones."""
        ...

    async def direct_role_assignments(
        self, object_id: str
    ) -> List[RoleAssignment]:
        """Assignments defined on the object itself."""
        ...

    async def explicit_users(self, assignee_id: str) -> List[str]:
        """Expand a role assignee (user or group) to user identifiers."""
        ...


@runtime_checkable
class NotificationRepository(Protocol):
    async def send_notification(self, notification: UserNotification) -> None:
        ...


@runtime_checkable
class SearchIndexRepository(Protocol):
    async def index_dataset(self, dataset_id: str) -> None:
        """Submit the dataset for asynchronous indexing."""
        ...

    async def index_dataverse(self, dataverse_id: str) -> None:
        ...


@runtime_checkable
class OnSuccessFailureLogRepository(Protocol):
    """Persistent log of post-commit failures, keyed by dataset."""

    async def write(self, command: str, text: str, dataset_id: str) -> None:
        ...

    async def list_for_dataset(self, dataset_id: str) -> List[str]:
        ...


@runtime_checkable
class StorageRepository(Protocol):
    """Access to the physical bytes behind data files."""

    async def is_dataverse_accessible(self, driver_id: str) -> bool:
        """True when the repository itself can read this driver's bytes."""
        ...

    async def compute_checksum(self, data_file: DataFile) -> str:
        """Recompute the file's checksum with its declared algorithm.

        Raises OSError when the physical object cannot be read.
        """
        ...


@runtime_checkable
class MetadataValidatorRepository(Protocol):
    """Call-out to the external metadata validator executable."""

    async def validate(self, dataset: Dataset, executable: str) -> bool:
        ...


@runtime_checkable
class WorkflowEngineRepository(Protocol):
    async def get_default_workflow(
        self, trigger: TriggerType
    ) -> Optional[WorkflowDefinition]:
        ...

    async def start(
        self,
        workflow: WorkflowDefinition,
        context: WorkflowContext,
        blocking: bool,
    ) -> str:
        """Start a workflow run and return its invocation id.

        The workflow is responsible for locking the dataset while it runs
        and for invoking the finalize phase when it completes.
        """
        ...


@runtime_checkable
class FinalizeDispatcher(Protocol):
    """Asynchronous dispatch of the finalize phase, keyed by dataset id."""

    async def dispatch_finalize(
        self, dataset_id: str, request: ArchiveRequest
    ) -> None:
        ...


@runtime_checkable
class SettingsRepository(Protocol):
    async def get_settings(self) -> ArchiveSettings:
        ...
