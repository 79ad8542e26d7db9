"""
Use cases for publishing a dataset into the long-term archive.

Publication happens in two phases that run as separate executions, joined
only by the dataset's durable lock state:

- ArchiveDatasetUseCase (kick-off) checks that publishing makes sense,
  assigns the next version number, runs the external metadata validator
  and either hands the dataset to a pre-archive workflow or locks it for
  finalization.
- FinalizeDatasetArchiveUseCase (finalize) validates the physical files,
  stamps the release, publishes files, propagates subjects to ancestor
  dataverses, moves the version to LONGTERM_ARCHIVED and unlocks the
  dataset.

Both use cases depend only on repository protocols. Inside Temporal
workflows the repositories are proxies that run each call as an activity,
so every repository call here passes positional arguments only and all
timestamps come from the injected clock.
"""

import logging
from datetime import datetime, time, timezone
from typing import Callable, List, Optional

from .config import ArchiveSettings
from .domain import (
    ARCHIVE_COMMAND,
    FINALIZE_COMMAND,
    ArchiveDatasetResult,
    ArchiveRequest,
    ArchiveStatus,
    Dataset,
    DatasetVersionUser,
    Dataverse,
    FanOutReport,
    FinalizeOutcome,
    LockReason,
    TriggerType,
    VersionState,
    WorkflowContext,
    utc_now,
)
from .errors import (
    CommandError,
    DatasetNotFoundError,
    IllegalCommandError,
)
from .fanout import PostArchiveFanOut
from .file_validation import FileChecksumValidator
from .files import publish_files
from .locks import LockRegistry
from .metadata_validation import ExternalMetadataValidator
from .preconditions import verify_archive_preconditions
from .repositories import (
    DatasetRepository,
    DatasetVersionUserRepository,
    DataverseRepository,
    FinalizeDispatcher,
    LockRepository,
    MetadataValidatorRepository,
    NotificationRepository,
    OnSuccessFailureLogRepository,
    PrivateUrlRepository,
    RoleAssignmentRepository,
    SearchIndexRepository,
    SettingsRepository,
    StorageRepository,
    WorkflowEngineRepository,
)
from .subjects import propagate_subjects
from .validation import ensure_repository_protocol, validate_version_or_die

logger = logging.getLogger(__name__)

SUBJECT_UPDATE_FAILURE = (
    "Post-publication indexing failed for Dataverse subject update. "
)


def archiving_lock_info(validate_files: bool) -> str:
    info = "Archiving the dataset; "
    if validate_files:
        info += "Validating Datafiles Asynchronously"
    return info


async def load_dataset(
    dataset_repo: DatasetRepository,
    locks: LockRegistry,
    dataset_id: str,
    command: str,
) -> Dataset:
    """Load a dataset together with its current lock set."""
    dataset = await dataset_repo.get(dataset_id)
    if dataset is None:
        raise DatasetNotFoundError(f"Dataset {dataset_id} not found", command)
    return await locks.refresh(dataset)


class ArchiveDatasetUseCase:
    """
    Kick-off of a dataset publication.

    The call either completes immediately with the dataset locked for
    finalization (status InProgress, finalize dispatched by on_success) or
    starts the default pre-archive workflow (status Workflow), which later
    invokes the finalize phase itself.

    Architectural Notes:
    - No lock survives a failed kick-off. The finalizePublication lock is
      written before the dataset save and is removed again if that save
      fails.
    - The default workflow observed during execute decides the branch;
      on_success reads the branch from the returned result instead of
      asking the workflow engine again.
    """

    def __init__(
        self,
        dataset_repo: DatasetRepository,
        dataverse_repo: DataverseRepository,
        lock_repo: LockRepository,
        validator_repo: MetadataValidatorRepository,
        workflow_engine_repo: WorkflowEngineRepository,
        finalize_dispatcher: FinalizeDispatcher,
        settings_repo: SettingsRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the kick-off use case.

        Args:
            dataset_repo: Repository for loading and saving datasets
            dataverse_repo: Repository for the host dataverse
            lock_repo: Durable lock storage
            validator_repo: Call-out to the external metadata validator
            workflow_engine_repo: Source of the default pre-archive workflow
            finalize_dispatcher: Asynchronous dispatch of the finalize phase
            settings_repo: Feature flags and limits
            clock: Source of the command timestamp

        Raises:
            RepositoryValidationError: if a repository does not satisfy its
                protocol
        """
        self.dataset_repo = ensure_repository_protocol(
            dataset_repo, DatasetRepository
        )
        self.dataverse_repo = ensure_repository_protocol(
            dataverse_repo, DataverseRepository
        )
        self.workflow_engine_repo = ensure_repository_protocol(
            workflow_engine_repo, WorkflowEngineRepository
        )
        self.finalize_dispatcher = ensure_repository_protocol(
            finalize_dispatcher, FinalizeDispatcher
        )
        self.settings_repo = ensure_repository_protocol(
            settings_repo, SettingsRepository
        )
        self.locks = LockRegistry(lock_repo, clock)
        self.metadata_validator = ExternalMetadataValidator(
            validator_repo, ARCHIVE_COMMAND
        )
        self.clock = clock

    async def execute(
        self,
        dataset_id: str,
        request: ArchiveRequest,
        externally_released: bool = False,
    ) -> ArchiveDatasetResult:
        """Kick off the publication of a dataset's latest version.

        Args:
            dataset_id: Dataset to publish
            request: Caller and workflow invocation
            externally_released: The latest version was released by an
                external system and is only being recorded here

        Returns:
            ArchiveDatasetResult with status Workflow or InProgress

        Raises:
            IllegalCommandError: when publishing makes no sense right now
            ValidationRejectedError: when the metadata validator rejects
            PersistenceConflictError: when the dataset changed concurrently
        """
        settings = await self.settings_repo.get_settings()
        dataset = await load_dataset(
            self.dataset_repo, self.locks, dataset_id, ARCHIVE_COMMAND
        )
        host = await self._host_dataverse(dataset)

        logger.info(
            "Starting dataset archive",
            extra={
                "dataset_id": dataset.dataset_id,
                "global_id": dataset.global_id,
                "user": request.user.identifier,
                "externally_released": externally_released,
            },
        )

        verify_archive_preconditions(
            dataset, host, request, self.locks, externally_released
        )
        validate_version_or_die(dataset.latest_version, ARCHIVE_COMMAND)

        self._assign_version_numbers(dataset)

        await self.metadata_validator.validate_or_reject(
            dataset, settings, request
        )

        workflow = await self.workflow_engine_repo.get_default_workflow(
            TriggerType.ARCHIVE_DATASET
        )

        if workflow is not None:
            saved = await self.dataset_repo.save(dataset)
            context = WorkflowContext(
                dataset_id=saved.dataset_id,
                trigger=TriggerType.ARCHIVE_DATASET,
                externally_released=False,
                user_identifier=request.user.identifier,
                superuser=request.user.superuser,
                invocation_id=request.workflow_invocation_id,
                next_version_number=saved.latest_version.version_number,
                next_minor_version_number=(
                    saved.latest_version.minor_version_number
                ),
            )
            invocation_id = await self.workflow_engine_repo.start(
                workflow, context, True
            )
            logger.info(
                "Pre-archive workflow started",
                extra={
                    "dataset_id": saved.dataset_id,
                    "workflow_id": workflow.workflow_id,
                    "invocation_id": invocation_id,
                },
            )
            return ArchiveDatasetResult(
                dataset=saved, status=ArchiveStatus.WORKFLOW
            )

        saved = await self._lock_and_save(
            dataset, request, settings, externally_released
        )
        logger.info(
            "Dataset locked for finalization",
            extra={
                "dataset_id": saved.dataset_id,
                "version": saved.latest_version.friendly_version_number,
            },
        )
        return ArchiveDatasetResult(
            dataset=saved, status=ArchiveStatus.IN_PROGRESS
        )

    async def on_success(
        self, result: ArchiveDatasetResult, request: ArchiveRequest
    ) -> bool:
        """Post-commit hook: dispatch finalize when no workflow took over.

        Returns True if the finalize phase was dispatched.
        """
        if result.status != ArchiveStatus.IN_PROGRESS:
            logger.debug(
                "Finalize left to the pre-archive workflow",
                extra={
                    "dataset_id": result.dataset.dataset_id,
                    "status": result.status.value,
                },
            )
            return False

        logger.debug(
            "From on_success, dispatching finalize for dataset "
            f"{result.dataset.global_id}"
        )
        await self.finalize_dispatcher.dispatch_finalize(
            result.dataset.dataset_id, request
        )
        return True

    async def _host_dataverse(self, dataset: Dataset) -> Dataverse:
        host = await self.dataverse_repo.get(dataset.owner_id)
        if host is None:
            raise IllegalCommandError(
                f"Host dataverse {dataset.owner_id} of dataset "
                f"{dataset.dataset_id} not found",
                ARCHIVE_COMMAND,
            )
        return host

    def _assign_version_numbers(self, dataset: Dataset) -> None:
        latest = dataset.latest_version
        if dataset.publication_date is None:
            latest.version_number = 1
        else:
            latest.version_number = (dataset.version_number or 0) + 1
        latest.minor_version_number = 0

    async def _lock_and_save(
        self,
        dataset: Dataset,
        request: ArchiveRequest,
        settings: ArchiveSettings,
        externally_released: bool,
    ) -> Dataset:
        # An externally released dataset may not be stored yet; finalize
        # treats the missing lock as already removed.
        if externally_released:
            return await self.dataset_repo.save(dataset)

        lock = self.locks.new_lock(
            dataset,
            LockReason.FINALIZE_PUBLICATION,
            request.user.user_id,
            archiving_lock_info(
                settings.datafile_validation_on_publish_enabled
            ),
        )
        await self.locks.add(dataset, lock)
        try:
            return await self.dataset_repo.save(dataset)
        except Exception:
            logger.error(
                "Dataset save failed, releasing finalize lock",
                extra={"dataset_id": dataset.dataset_id},
                exc_info=True,
            )
            await self.locks.remove(dataset, LockReason.FINALIZE_PUBLICATION)
            raise


class FinalizeDatasetArchiveUseCase:
    """
    Finalize phase of a dataset publication.

    execute() performs the ordered publication effects and commits them;
    on_success() then fans out notifications and index updates on a
    best-effort basis. recover() is the boundary handler for a failed
    execute: it records the failure and makes sure no finalizePublication
    lock is left behind.
    """

    def __init__(
        self,
        dataset_repo: DatasetRepository,
        dataverse_repo: DataverseRepository,
        lock_repo: LockRepository,
        version_user_repo: DatasetVersionUserRepository,
        private_url_repo: PrivateUrlRepository,
        role_repo: RoleAssignmentRepository,
        notification_repo: NotificationRepository,
        index_repo: SearchIndexRepository,
        failure_log_repo: OnSuccessFailureLogRepository,
        storage_repo: StorageRepository,
        settings_repo: SettingsRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.dataset_repo = ensure_repository_protocol(
            dataset_repo, DatasetRepository
        )
        self.dataverse_repo = ensure_repository_protocol(
            dataverse_repo, DataverseRepository
        )
        self.version_user_repo = ensure_repository_protocol(
            version_user_repo, DatasetVersionUserRepository
        )
        self.private_url_repo = ensure_repository_protocol(
            private_url_repo, PrivateUrlRepository
        )
        self.failure_log_repo = ensure_repository_protocol(
            failure_log_repo, OnSuccessFailureLogRepository
        )
        self.settings_repo = ensure_repository_protocol(
            settings_repo, SettingsRepository
        )
        self.locks = LockRegistry(lock_repo, clock)
        self.file_validator = FileChecksumValidator(
            storage_repo, self.locks, FINALIZE_COMMAND
        )
        self.fan_out = PostArchiveFanOut(
            role_repo,
            notification_repo,
            index_repo,
            failure_log_repo,
            FINALIZE_COMMAND,
        )
        self.clock = clock

    async def execute(
        self, dataset_id: str, request: ArchiveRequest
    ) -> FinalizeOutcome:
        """Publish the latest version and release the dataset's locks.

        Raises:
            FileValidationFailedError: physical files failed validation; the
                dataset is left with a FileValidationFailed lock
            IllegalCommandError: the version failed structural validation
            PersistenceConflictError: the dataset changed concurrently
        """
        settings = await self.settings_repo.get_settings()
        dataset = await load_dataset(
            self.dataset_repo, self.locks, dataset_id, FINALIZE_COMMAND
        )
        timestamp = self.clock()
        latest = dataset.latest_version

        logger.info(
            f"Finalizing archive of the dataset {dataset.global_id}",
            extra={
                "dataset_id": dataset.dataset_id,
                "version": latest.friendly_version_number,
                "user": request.user.identifier,
            },
        )

        if (
            latest.state != VersionState.LONGTERM_ARCHIVED
            and latest.minor_version_number == 0
            and settings.datafile_validation_on_publish_enabled
        ):
            await self.file_validator.validate(dataset, settings, request)

        validate_version_or_die(latest, FINALIZE_COMMAND, True)

        if dataset.publication_date is None:
            dataset.publication_date = timestamp
            dataset.release_user_id = request.user.user_id
            if settings.embargo_citation_date_enabled:
                dataset.embargo_citation_date = self._latest_embargo_date(
                    dataset
                )

        latest.external_status_label = None

        if latest.release_time is None:
            latest.release_time = timestamp
        if latest.state == VersionState.DRAFT:
            latest.state = VersionState.RELEASED
        latest.last_update_time = timestamp
        dataset.modification_time = timestamp
        if latest.terms_of_use is not None:
            dataset.file_access_request = (
                latest.terms_of_use.file_access_request
            )

        newly_published = publish_files(dataset, latest.release_time)

        await self._record_version_user(dataset, request, timestamp)

        dataverses_to_index = await self._propagate_subjects(dataset)

        private_url = await self.private_url_repo.get(dataset.dataset_id)
        if private_url is not None:
            await self.private_url_repo.delete(dataset.dataset_id)
            logger.info(
                "Private URL cancelled",
                extra={"dataset_id": dataset.dataset_id},
            )

        if latest.state != VersionState.LONGTERM_ARCHIVED:
            latest.state = VersionState.LONGTERM_ARCHIVED
        dataset.version_number = latest.version_number
        dataset.minor_version_number = latest.minor_version_number

        saved = await self.dataset_repo.save(dataset)
        saved.locks = dataset.locks

        await self.locks.remove(saved, LockReason.WORKFLOW)
        await self.locks.remove(saved, LockReason.FINALIZE_PUBLICATION)
        if self.locks.is_locked_for(saved, LockReason.IN_REVIEW):
            await self.locks.remove(saved, LockReason.IN_REVIEW)

        logger.info(
            f"Successfully archived the dataset {saved.global_id}",
            extra={
                "dataset_id": saved.dataset_id,
                "version": saved.latest_version.friendly_version_number,
                "newly_published_files": len(newly_published),
                "dataverses_to_index": dataverses_to_index,
            },
        )
        return FinalizeOutcome(
            dataset=saved,
            newly_published_file_ids=newly_published,
            dataverses_to_index=dataverses_to_index,
        )

    async def on_success(self, outcome: FinalizeOutcome) -> FinalizeOutcome:
        """Post-commit fan-out; failures are recorded, never raised."""
        report: FanOutReport = await self.fan_out.run(outcome, self.clock())
        return outcome.model_copy(update={"fan_out": report})

    async def recover(self, dataset_id: str, error: CommandError) -> None:
        """Record a failed finalize and release its finalizePublication lock.

        A lock already converted to FileValidationFailed is kept, since it
        tells an operator why the dataset is stuck.
        """
        logger.error(
            "Finalize of dataset archive failed",
            extra={
                "dataset_id": dataset_id,
                "command": error.command,
                "error": error.message,
            },
        )
        await self.failure_log_repo.write(
            error.command or FINALIZE_COMMAND,
            f"Finalizing the archive of dataset {dataset_id} failed: "
            f"{error.message}",
            dataset_id,
        )

        dataset = await self.dataset_repo.get(dataset_id)
        if dataset is None:
            return
        await self.locks.refresh(dataset)
        if self.locks.is_locked_for(dataset, LockReason.FINALIZE_PUBLICATION):
            await self.locks.remove(dataset, LockReason.FINALIZE_PUBLICATION)

    async def _record_version_user(
        self,
        dataset: Dataset,
        request: ArchiveRequest,
        timestamp: datetime,
    ) -> None:
        version_id = dataset.latest_version.version_id
        user_id = request.user.user_id
        record = await self.version_user_repo.get(version_id, user_id)
        if record is None:
            record = DatasetVersionUser(
                version_id=version_id,
                user_id=user_id,
                last_update_date=timestamp,
            )
        else:
            record.last_update_date = timestamp
        await self.version_user_repo.save(record)

    async def _propagate_subjects(self, dataset: Dataset) -> List[str]:
        try:
            return await propagate_subjects(dataset, self.dataverse_repo)
        except Exception as e:
            logger.error(
                "Subject propagation to ancestor dataverses failed",
                extra={"dataset_id": dataset.dataset_id},
                exc_info=True,
            )
            await self.failure_log_repo.write(
                FINALIZE_COMMAND,
                SUBJECT_UPDATE_FAILURE + "\r\n" + str(e),
                dataset.dataset_id,
            )
            return []

    def _latest_embargo_date(self, dataset: Dataset) -> Optional[datetime]:
        embargo_dates = [
            data_file.embargo.date_available
            for data_file in dataset.files
            if data_file.embargo is not None
        ]
        if not embargo_dates:
            return None
        return datetime.combine(
            max(embargo_dates), time.min, tzinfo=timezone.utc
        )
