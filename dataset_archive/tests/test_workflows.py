"""
Tests for the archive workflows.

These tests verify how the workflows orchestrate the use cases: the
Temporal runtime calls are patched, and the workflow proxies are replaced
with the memory repositories so the outcome can be inspected directly.
"""

import asyncio
from contextlib import ExitStack, contextmanager
from unittest.mock import AsyncMock, Mock, patch

import pytest
from temporalio.exceptions import ActivityError, ApplicationError

from dataset_archive.domain import (
    FINALIZE_COMMAND,
    ArchiveRequest,
    ArchiveStatus,
    ArchiveWorkflowInput,
    FinalizeOutcome,
    FinalizeWorkflowInput,
    LockReason,
    TriggerType,
    User,
    VersionState,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowStep,
)
from dataset_archive.errors import (
    CommandError,
    FileValidationFailedError,
    IllegalCommandError,
)
from dataset_archive.tests.factories import (
    FIXED_NOW,
    DatasetFactory,
    DatasetVersionFactory,
    store_files,
)
from dataset_archive.workflows import (
    ArchiveDatasetWorkflow,
    FinalizeDatasetArchiveWorkflow,
    archive_workflow_id,
    as_command_error,
    finalize_workflow_id,
    run_finalize,
)

RUN_ID = "run-7f3a"


def numbered_dataset(**kwargs):
    """A draft whose version numbers were assigned at kick-off."""
    return DatasetFactory(
        versions=[
            DatasetVersionFactory(version_number=1, minor_version_number=0)
        ],
        **kwargs,
    )


def archive_input(dataset_id, *steps, superuser=False):
    return ArchiveWorkflowInput(
        workflow=WorkflowDefinition(
            workflow_id="curation", name="Curation review", steps=list(steps)
        ),
        context=WorkflowContext(
            dataset_id=dataset_id,
            trigger=TriggerType.ARCHIVE_DATASET,
            user_identifier="@alice",
            superuser=superuser,
            next_version_number=1,
            next_minor_version_number=0,
        ),
    )


@contextmanager
def temporal_runtime(**repos):
    """Patch the Temporal workflow API and route proxies to memory repos."""
    proxies = {
        "WorkflowDatasetRepositoryProxy": repos["dataset_repo"],
        "WorkflowLockRepositoryProxy": repos["lock_repo"],
        "WorkflowSettingsRepositoryProxy": repos["settings_repo"],
        "WorkflowMetadataValidatorRepositoryProxy": repos["validator_repo"],
    }
    with ExitStack() as stack:
        for name, repo in proxies.items():
            stack.enter_context(
                patch(f"dataset_archive.workflows.{name}", return_value=repo)
            )
        stack.enter_context(
            patch(
                "dataset_archive.workflows.new_finalize_use_case",
                return_value=repos["finalize_use_case"],
            )
        )
        stack.enter_context(
            patch(
                "temporalio.workflow.info", return_value=Mock(run_id=RUN_ID)
            )
        )
        stack.enter_context(
            patch("temporalio.workflow.now", return_value=FIXED_NOW)
        )
        stack.enter_context(patch("temporalio.workflow.logger"))
        wait_condition = stack.enter_context(
            patch("temporalio.workflow.wait_condition", new_callable=AsyncMock)
        )
        yield wait_condition


@pytest.fixture
def runtime(
    dataset_repo,
    lock_repo,
    settings_repo,
    validator_repo,
    finalize_use_case,
):
    return temporal_runtime(
        dataset_repo=dataset_repo,
        lock_repo=lock_repo,
        settings_repo=settings_repo,
        validator_repo=validator_repo,
        finalize_use_case=finalize_use_case,
    )


class TestWorkflowIds:
    def test_ids_are_derived_from_the_dataset(self) -> None:
        assert archive_workflow_id("ds-1") == "archive-dataset-ds-1"
        assert finalize_workflow_id("ds-1") == "finalize-archive-ds-1"


class TestAsCommandError:
    def test_command_errors_pass_through(self) -> None:
        error = IllegalCommandError("nope", "ArchiveDataset")
        assert as_command_error(error, FINALIZE_COMMAND) is error

    def test_activity_error_uses_its_cause(self) -> None:
        activity_error = Mock(
            spec=ActivityError, cause=ApplicationError("disk on fire")
        )

        error = as_command_error(activity_error, FINALIZE_COMMAND)

        assert error.message == "disk on fire"
        assert error.command == FINALIZE_COMMAND

    def test_other_errors_keep_their_message(self) -> None:
        error = as_command_error(RuntimeError("boom"), FINALIZE_COMMAND)

        assert type(error) is CommandError
        assert error.message == "boom"


class TestRunFinalize:
    @pytest.mark.asyncio
    async def test_success_runs_fan_out(self) -> None:
        outcome = FinalizeOutcome(dataset=numbered_dataset())
        use_case = AsyncMock()
        use_case.execute.return_value = outcome
        use_case.on_success.return_value = outcome

        with patch("temporalio.workflow.logger"):
            result = await run_finalize(
                use_case, "ds-1", ArchiveRequest(user=User(identifier="@a"))
            )

        assert result is outcome
        use_case.on_success.assert_awaited_once_with(outcome)
        use_case.recover.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_recovers_and_fails_without_retry(self) -> None:
        failure = FileValidationFailedError(
            "checksum mismatch", FINALIZE_COMMAND, ["file-1"]
        )
        use_case = AsyncMock()
        use_case.execute.side_effect = failure

        with patch("temporalio.workflow.logger"):
            with pytest.raises(ApplicationError) as exc_info:
                await run_finalize(
                    use_case,
                    "ds-1",
                    ArchiveRequest(user=User(identifier="@a")),
                )

        assert exc_info.value.type == "FileValidationFailedError"
        assert exc_info.value.non_retryable is True
        use_case.recover.assert_awaited_once_with("ds-1", failure)
        use_case.on_success.assert_not_awaited()


@pytest.mark.usefixtures("root_dataverse")
class TestArchiveDatasetWorkflow:
    @pytest.mark.asyncio
    async def test_steps_run_then_dataset_is_finalized(
        self, runtime, dataset_repo, lock_repo, storage_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        store_files(storage_repo, dataset)
        wf = ArchiveDatasetWorkflow()
        wf.resume()

        with runtime as wait_condition:
            result = await wf.run(
                archive_input(
                    dataset.dataset_id,
                    WorkflowStep(step_type="log"),
                    WorkflowStep(step_type="pause"),
                )
            )

        assert result.status == ArchiveStatus.COMPLETED
        assert (
            result.dataset.latest_version.state
            == VersionState.LONGTERM_ARCHIVED
        )
        assert wf.get_current_step() == "completed"
        wait_condition.assert_awaited_once()
        assert await lock_repo.list_for_dataset(dataset.dataset_id) == []

    @pytest.mark.asyncio
    async def test_rejected_pause_unlocks_dataset(
        self, runtime, dataset_repo, lock_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        wf = ArchiveDatasetWorkflow()
        wf.reject("incomplete metadata")

        with runtime:
            with pytest.raises(ApplicationError, match="incomplete metadata"):
                await wf.run(
                    archive_input(
                        dataset.dataset_id, WorkflowStep(step_type="pause")
                    )
                )

        assert wf.get_current_step() == "failed"
        assert await lock_repo.list_for_dataset(dataset.dataset_id) == []
        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.latest_version.state == VersionState.DRAFT

    @pytest.mark.asyncio
    async def test_pause_times_out(
        self, runtime, dataset_repo, lock_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        wf = ArchiveDatasetWorkflow()

        with runtime as wait_condition:
            wait_condition.side_effect = asyncio.TimeoutError()
            with pytest.raises(ApplicationError, match="not resumed in time"):
                await wf.run(
                    archive_input(
                        dataset.dataset_id, WorkflowStep(step_type="pause")
                    )
                )

        assert await lock_repo.list_for_dataset(dataset.dataset_id) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "step,message",
        [
            (
                WorkflowStep(step_type="email"),
                "Unknown workflow step type: email",
            ),
            (
                WorkflowStep(provider="http", step_type="log"),
                "Unknown workflow step provider: http",
            ),
        ],
    )
    async def test_unsupported_steps_fail(
        self, runtime, dataset_repo, lock_repo, step, message
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)

        with runtime:
            with pytest.raises(ApplicationError, match=message) as exc_info:
                await ArchiveDatasetWorkflow().run(
                    archive_input(dataset.dataset_id, step)
                )

        assert exc_info.value.type == "IllegalCommandError"
        assert await lock_repo.list_for_dataset(dataset.dataset_id) == []

    @pytest.mark.asyncio
    async def test_metadata_validation_step(
        self, runtime, dataset_repo, lock_repo, settings, validator_repo
    ) -> None:
        settings.external_dataset_validation_enabled = True
        settings.dataset_validation_executable = "/opt/validate"
        validator_repo.accept = False
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)

        with runtime:
            with pytest.raises(ApplicationError) as exc_info:
                await ArchiveDatasetWorkflow().run(
                    archive_input(
                        dataset.dataset_id,
                        WorkflowStep(step_type="validate_metadata"),
                    )
                )

        assert exc_info.value.type == "ValidationRejectedError"
        assert validator_repo.calls == [
            (dataset.dataset_id, "/opt/validate")
        ]
        assert await lock_repo.list_for_dataset(dataset.dataset_id) == []

    @pytest.mark.asyncio
    async def test_superuser_override_skips_metadata_validation(
        self,
        runtime,
        dataset_repo,
        storage_repo,
        settings,
        validator_repo,
    ) -> None:
        settings.external_dataset_validation_enabled = True
        settings.external_validation_admin_override_enabled = True
        settings.dataset_validation_executable = "/opt/validate"
        validator_repo.accept = False
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        store_files(storage_repo, dataset)

        with runtime:
            result = await ArchiveDatasetWorkflow().run(
                archive_input(
                    dataset.dataset_id,
                    WorkflowStep(step_type="validate_metadata"),
                    superuser=True,
                )
            )

        assert result.status == ArchiveStatus.COMPLETED
        assert validator_repo.calls == []

    @pytest.mark.asyncio
    async def test_failed_workflow_unlock_releases_finalize_lock(
        self, runtime, dataset_repo, lock_repo, failure_log_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        remove = lock_repo.remove

        async def flaky_remove(dataset_id, reason):
            if reason == LockReason.WORKFLOW:
                raise CommandError("lock store unavailable")
            await remove(dataset_id, reason)

        wf = ArchiveDatasetWorkflow()
        with runtime, patch.object(
            lock_repo, "remove", side_effect=flaky_remove
        ):
            with pytest.raises(ApplicationError, match="lock store"):
                await wf.run(
                    archive_input(
                        dataset.dataset_id, WorkflowStep(step_type="log")
                    )
                )

        assert wf.get_current_step() == "failed"
        reasons = [
            lock.reason
            for lock in await lock_repo.list_for_dataset(dataset.dataset_id)
        ]
        assert reasons == [LockReason.WORKFLOW]
        entries = await failure_log_repo.list_for_dataset(dataset.dataset_id)
        assert len(entries) == 1
        assert "lock store unavailable" in entries[0]

    @pytest.mark.asyncio
    async def test_missing_dataset(self, runtime) -> None:
        wf = ArchiveDatasetWorkflow()

        with runtime:
            with pytest.raises(ApplicationError, match="not found"):
                await wf.run(archive_input("ds-missing"))

        assert wf.get_current_step() == "failed"

    @pytest.mark.asyncio
    async def test_workflow_lock_records_run_id(
        self, runtime, dataset_repo, lock_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        seen = []

        async def inspect_locks(*args, **kwargs):
            seen.extend(await lock_repo.list_for_dataset(dataset.dataset_id))
            return True

        with runtime as wait_condition:
            wait_condition.side_effect = inspect_locks
            wf = ArchiveDatasetWorkflow()
            wf.resume()
            with pytest.raises(ApplicationError):
                # No stored files, so finalize fails after the pause.
                await wf.run(
                    archive_input(
                        dataset.dataset_id, WorkflowStep(step_type="pause")
                    )
                )

        [lock] = seen
        assert lock.reason == LockReason.WORKFLOW
        assert lock.workflow_invocation_id == RUN_ID
        assert lock.info == "Running workflow Curation review"


@pytest.mark.usefixtures("root_dataverse")
class TestFinalizeDatasetArchiveWorkflow:
    @pytest.mark.asyncio
    async def test_finalize_runs_fan_out(
        self, runtime, dataset_repo, lock_repo, storage_repo, index_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)
        store_files(storage_repo, dataset)
        wf = FinalizeDatasetArchiveWorkflow()

        with runtime:
            outcome = await wf.run(
                FinalizeWorkflowInput(
                    dataset_id=dataset.dataset_id,
                    request=ArchiveRequest(user=User(identifier="@alice")),
                )
            )

        assert outcome.fan_out is not None
        assert outcome.fan_out.dataset_indexed is True
        assert index_repo.indexed_datasets == [dataset.dataset_id]
        assert wf.get_current_step() == "completed"

    @pytest.mark.asyncio
    async def test_failed_finalize_is_recorded(
        self, runtime, dataset_repo, failure_log_repo
    ) -> None:
        dataset = numbered_dataset()
        await dataset_repo.save(dataset)

        with runtime:
            with pytest.raises(ApplicationError) as exc_info:
                await FinalizeDatasetArchiveWorkflow().run(
                    FinalizeWorkflowInput(
                        dataset_id=dataset.dataset_id,
                        request=ArchiveRequest(user=User(identifier="@bob")),
                    )
                )

        assert exc_info.value.type == "FileValidationFailedError"
        entries = await failure_log_repo.list_for_dataset(dataset.dataset_id)
        assert len(entries) == 1
        assert entries[0].startswith(f"{FINALIZE_COMMAND}: Finalizing")
