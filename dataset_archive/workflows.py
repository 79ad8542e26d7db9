"""
Temporal workflows for the archive engine.

The workflows are thin wrappers around the use cases. Repositories are
workflow proxies that run each call as an activity, and the use cases
take ``workflow.now`` as their clock, so replays are deterministic.

- ArchiveDatasetWorkflow runs a pre-archive workflow definition for a
  dataset, then converts its Workflow lock into a finalizePublication
  lock and finalizes the dataset.
- FinalizeDatasetArchiveWorkflow runs the finalize phase dispatched by a
  kick-off that did not start a pre-archive workflow.
"""

import asyncio
from datetime import timedelta
from typing import Optional

from temporalio import workflow
from temporalio.exceptions import ActivityError, ApplicationError

from dataset_archive.domain import (
    ARCHIVE_COMMAND,
    FINALIZE_COMMAND,
    ArchiveDatasetResult,
    ArchiveRequest,
    ArchiveStatus,
    ArchiveWorkflowInput,
    Dataset,
    FinalizeOutcome,
    FinalizeWorkflowInput,
    LockReason,
    User,
    WorkflowStep,
)
from dataset_archive.errors import CommandError, IllegalCommandError
from dataset_archive.locks import LockRegistry
from dataset_archive.metadata_validation import ExternalMetadataValidator
from dataset_archive.repos.temporal.proxies import (
    WorkflowDatasetRepositoryProxy,
    WorkflowDatasetVersionUserRepositoryProxy,
    WorkflowDataverseRepositoryProxy,
    WorkflowLockRepositoryProxy,
    WorkflowMetadataValidatorRepositoryProxy,
    WorkflowNotificationRepositoryProxy,
    WorkflowOnSuccessFailureLogRepositoryProxy,
    WorkflowPrivateUrlRepositoryProxy,
    WorkflowRoleAssignmentRepositoryProxy,
    WorkflowSearchIndexRepositoryProxy,
    WorkflowSettingsRepositoryProxy,
    WorkflowStorageRepositoryProxy,
)
from dataset_archive.usecase import (
    FinalizeDatasetArchiveUseCase,
    archiving_lock_info,
    load_dataset,
)

TASK_QUEUE = "dataset-archive-queue"

# How long a pause step waits for its resume signal.
PAUSE_TIMEOUT = timedelta(days=30)


def archive_workflow_id(dataset_id: str) -> str:
    return f"archive-dataset-{dataset_id}"


def finalize_workflow_id(dataset_id: str) -> str:
    return f"finalize-archive-{dataset_id}"


def as_command_error(error: Exception, command: str) -> CommandError:
    """Turn an activity failure into the CommandError the use cases use."""
    if isinstance(error, CommandError):
        return error
    cause = error.cause if isinstance(error, ActivityError) else None
    message = str(cause) if cause is not None else str(error)
    return CommandError(message, command)


def as_application_error(error: CommandError) -> ApplicationError:
    return ApplicationError(
        error.message, type=type(error).__name__, non_retryable=True
    )


def new_finalize_use_case() -> FinalizeDatasetArchiveUseCase:
    return FinalizeDatasetArchiveUseCase(
        dataset_repo=WorkflowDatasetRepositoryProxy(),  # type: ignore[abstract]
        dataverse_repo=WorkflowDataverseRepositoryProxy(),  # type: ignore[abstract]
        lock_repo=WorkflowLockRepositoryProxy(),  # type: ignore[abstract]
        version_user_repo=WorkflowDatasetVersionUserRepositoryProxy(),  # type: ignore[abstract]
        private_url_repo=WorkflowPrivateUrlRepositoryProxy(),  # type: ignore[abstract]
        role_repo=WorkflowRoleAssignmentRepositoryProxy(),  # type: ignore[abstract]
        notification_repo=WorkflowNotificationRepositoryProxy(),  # type: ignore[abstract]
        index_repo=WorkflowSearchIndexRepositoryProxy(),  # type: ignore[abstract]
        failure_log_repo=WorkflowOnSuccessFailureLogRepositoryProxy(),  # type: ignore[abstract]
        storage_repo=WorkflowStorageRepositoryProxy(),  # type: ignore[abstract]
        settings_repo=WorkflowSettingsRepositoryProxy(),  # type: ignore[abstract]
        clock=workflow.now,
    )


async def run_finalize(
    use_case: FinalizeDatasetArchiveUseCase,
    dataset_id: str,
    request: ArchiveRequest,
) -> FinalizeOutcome:
    """Execute, then fan out; on failure recover and fail the workflow."""
    try:
        outcome = await use_case.execute(dataset_id, request)
    except (CommandError, ActivityError) as e:
        error = as_command_error(e, FINALIZE_COMMAND)
        workflow.logger.error(
            "Finalize failed",
            extra={
                "dataset_id": dataset_id,
                "error": error.message,
                "error_type": type(error).__name__,
            },
        )
        await use_case.recover(dataset_id, error)
        raise as_application_error(error) from e
    return await use_case.on_success(outcome)


@workflow.defn
class ArchiveDatasetWorkflow:
    def __init__(self) -> None:
        self.current_step = "initialized"
        self._pending_resumes = 0
        self._rejection: Optional[str] = None

    @workflow.query
    def get_current_step(self) -> str:
        """Query method to get the current workflow step"""
        return str(self.current_step)

    @workflow.signal
    def resume(self) -> None:
        """Let the current (or next) pause step continue."""
        self._pending_resumes += 1

    @workflow.signal
    def reject(self, reason: str) -> None:
        """Fail the workflow at the current (or next) pause step."""
        self._rejection = reason

    @workflow.run
    async def run(
        self, run_input: ArchiveWorkflowInput
    ) -> ArchiveDatasetResult:
        """
        Lock the dataset, run the definition's steps, then finalize.

        The run id is the invocation id recorded on the Workflow lock. On
        a failed step only the Workflow lock is removed; the dataset keeps
        the version numbers assigned at kick-off.
        """
        context = run_input.context
        definition = run_input.workflow
        invocation_id = workflow.info().run_id
        request = ArchiveRequest(
            user=User(
                identifier=context.user_identifier,
                superuser=context.superuser,
            ),
            workflow_invocation_id=invocation_id,
        )

        workflow.logger.info(
            "Starting pre-archive workflow",
            extra={
                "dataset_id": context.dataset_id,
                "workflow_id": definition.workflow_id,
                "invocation_id": invocation_id,
                "steps": len(definition.steps),
            },
        )

        dataset_repo = WorkflowDatasetRepositoryProxy()  # type: ignore[abstract]
        settings_repo = WorkflowSettingsRepositoryProxy()  # type: ignore[abstract]
        locks = LockRegistry(
            WorkflowLockRepositoryProxy(),  # type: ignore[abstract]
            workflow.now,
        )

        self.current_step = "locking"
        try:
            dataset = await load_dataset(
                dataset_repo, locks, context.dataset_id, ARCHIVE_COMMAND
            )
            await locks.add(
                dataset,
                locks.new_lock(
                    dataset,
                    LockReason.WORKFLOW,
                    request.user.user_id,
                    f"Running workflow {definition.name}",
                    invocation_id,
                ),
            )
        except (CommandError, ActivityError) as e:
            self.current_step = "failed"
            raise as_application_error(
                as_command_error(e, ARCHIVE_COMMAND)
            ) from e

        try:
            for index, step in enumerate(definition.steps):
                self.current_step = f"step {index + 1}: {step.step_type}"
                await self._run_step(step, dataset, request, settings_repo)

            # The finalizePublication lock goes on before the Workflow
            # lock comes off.
            self.current_step = "converting locks"
            settings = await settings_repo.get_settings()
            await locks.add(
                dataset,
                locks.new_lock(
                    dataset,
                    LockReason.FINALIZE_PUBLICATION,
                    request.user.user_id,
                    archiving_lock_info(
                        settings.datafile_validation_on_publish_enabled
                    ),
                    invocation_id,
                ),
            )
        except (CommandError, ActivityError) as e:
            error = as_command_error(e, ARCHIVE_COMMAND)
            workflow.logger.warning(
                "Pre-archive workflow failed, unlocking dataset",
                extra={
                    "dataset_id": context.dataset_id,
                    "step": self.current_step,
                    "error": error.message,
                },
            )
            await locks.remove(dataset, LockReason.WORKFLOW)
            self.current_step = "failed"
            raise as_application_error(error) from e

        finalize_use_case = new_finalize_use_case()
        try:
            await locks.remove(dataset, LockReason.WORKFLOW)
        except (CommandError, ActivityError) as e:
            # finalizePublication is already held; release it the way a
            # failed finalize does.
            error = as_command_error(e, ARCHIVE_COMMAND)
            workflow.logger.error(
                "Could not release Workflow lock after conversion",
                extra={
                    "dataset_id": context.dataset_id,
                    "error": error.message,
                },
            )
            self.current_step = "failed"
            await finalize_use_case.recover(context.dataset_id, error)
            raise as_application_error(error) from e

        self.current_step = "finalizing"
        outcome = await run_finalize(
            finalize_use_case, context.dataset_id, request
        )

        self.current_step = "completed"
        workflow.logger.info(
            "Pre-archive workflow completed",
            extra={
                "dataset_id": context.dataset_id,
                "invocation_id": invocation_id,
            },
        )
        return ArchiveDatasetResult(
            dataset=outcome.dataset, status=ArchiveStatus.COMPLETED
        )

    async def _run_step(
        self,
        step: WorkflowStep,
        dataset: Dataset,
        request: ArchiveRequest,
        settings_repo: WorkflowSettingsRepositoryProxy,
    ) -> None:
        if step.provider != "internal":
            raise IllegalCommandError(
                f"Unknown workflow step provider: {step.provider}",
                ARCHIVE_COMMAND,
            )

        if step.step_type == "log":
            workflow.logger.info(
                step.parameters.get("message", "Workflow log step"),
                extra={
                    "dataset_id": dataset.dataset_id,
                    "parameters": step.parameters,
                },
            )
        elif step.step_type == "pause":
            await self._pause(dataset)
        elif step.step_type == "validate_metadata":
            settings = await settings_repo.get_settings()
            validator = ExternalMetadataValidator(
                WorkflowMetadataValidatorRepositoryProxy(),  # type: ignore[abstract]
                ARCHIVE_COMMAND,
            )
            await validator.validate_or_reject(dataset, settings, request)
        else:
            raise IllegalCommandError(
                f"Unknown workflow step type: {step.step_type}",
                ARCHIVE_COMMAND,
            )

    async def _pause(self, dataset: Dataset) -> None:
        workflow.logger.info(
            "Workflow paused, waiting for resume signal",
            extra={"dataset_id": dataset.dataset_id},
        )
        try:
            await workflow.wait_condition(
                lambda: self._pending_resumes > 0
                or self._rejection is not None,
                timeout=PAUSE_TIMEOUT,
            )
        except asyncio.TimeoutError:
            raise IllegalCommandError(
                "Workflow was not resumed in time", ARCHIVE_COMMAND
            ) from None
        if self._rejection is not None:
            raise IllegalCommandError(
                f"Workflow rejected: {self._rejection}", ARCHIVE_COMMAND
            )
        self._pending_resumes -= 1


@workflow.defn
class FinalizeDatasetArchiveWorkflow:
    def __init__(self) -> None:
        self.current_step = "initialized"

    @workflow.query
    def get_current_step(self) -> str:
        return str(self.current_step)

    @workflow.run
    async def run(self, run_input: FinalizeWorkflowInput) -> FinalizeOutcome:
        workflow.logger.info(
            "Starting finalize workflow",
            extra={
                "dataset_id": run_input.dataset_id,
                "workflow_run_id": workflow.info().run_id,
            },
        )
        self.current_step = "finalizing"
        outcome = await run_finalize(
            new_finalize_use_case(), run_input.dataset_id, run_input.request
        )
        self.current_step = "completed"
        return outcome
