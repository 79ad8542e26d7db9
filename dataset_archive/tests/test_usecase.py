"""
Tests for the kick-off and finalize use cases.

The use cases run against the memory repositories, so each test can
inspect exactly what was persisted, locked, recorded and dispatched.
"""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from dataset_archive.domain import (
    ARCHIVE_COMMAND,
    FINALIZE_COMMAND,
    ArchiveRequest,
    ArchiveStatus,
    Embargo,
    LockReason,
    Permission,
    PrivateUrl,
    TriggerType,
    User,
    VersionState,
    WorkflowDefinition,
    WorkflowStep,
)
from dataset_archive.errors import (
    DatasetNotFoundError,
    FileValidationFailedError,
    IllegalCommandError,
    PersistenceConflictError,
    ValidationRejectedError,
)
from dataset_archive.tests.factories import (
    FIXED_NOW,
    DataFileFactory,
    DatasetFactory,
    DatasetVersionFactory,
    TermsFactory,
    minimal_lock,
    released_dataset,
    store_files,
)
from dataset_archive.usecase import archiving_lock_info

CURATION = WorkflowDefinition(
    workflow_id="curation",
    name="Curation review",
    steps=[WorkflowStep(step_type="pause")],
)


async def seed(dataset_repo, dataset):
    await dataset_repo.save(dataset)
    return dataset


async def lock_reasons(lock_repo, dataset_id):
    return [
        lock.reason for lock in await lock_repo.list_for_dataset(dataset_id)
    ]


@pytest.mark.usefixtures("root_dataverse")
class TestArchiveDatasetUseCase:
    @pytest.mark.asyncio
    async def test_draft_is_locked_for_finalization(
        self, archive_use_case, dataset_repo, lock_repo, request_by_alice
    ) -> None:
        dataset = await seed(dataset_repo, DatasetFactory())

        result = await archive_use_case.execute(
            dataset.dataset_id, request_by_alice
        )

        assert result.status == ArchiveStatus.IN_PROGRESS
        assert result.dataset.latest_version.friendly_version_number == "1.0"
        locks = await lock_repo.list_for_dataset(dataset.dataset_id)
        assert len(locks) == 1
        assert locks[0].reason == LockReason.FINALIZE_PUBLICATION
        assert locks[0].user_id == "alice"
        assert locks[0].info == (
            "Archiving the dataset; Validating Datafiles Asynchronously"
        )
        assert locks[0].created_at == FIXED_NOW
        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.latest_version.version_number == 1
        assert stored.latest_version.state == VersionState.DRAFT

    @pytest.mark.asyncio
    async def test_on_success_dispatches_finalize(
        self,
        archive_use_case,
        dataset_repo,
        finalize_dispatcher,
        request_by_alice,
    ) -> None:
        dataset = await seed(dataset_repo, DatasetFactory())
        result = await archive_use_case.execute(
            dataset.dataset_id, request_by_alice
        )

        dispatched = await archive_use_case.on_success(
            result, request_by_alice
        )

        assert dispatched is True
        assert finalize_dispatcher.dispatched == [
            (dataset.dataset_id, request_by_alice)
        ]

    @pytest.mark.asyncio
    async def test_next_major_version_follows_last_release(
        self, archive_use_case, dataset_repo, request_by_alice
    ) -> None:
        dataset = await seed(dataset_repo, released_dataset())

        result = await archive_use_case.execute(
            dataset.dataset_id, request_by_alice
        )

        assert result.dataset.latest_version.friendly_version_number == "2.0"

    @pytest.mark.asyncio
    async def test_lock_info_without_file_validation(
        self,
        archive_use_case,
        dataset_repo,
        lock_repo,
        settings,
        request_by_alice,
    ) -> None:
        settings.datafile_validation_on_publish_enabled = False
        dataset = await seed(dataset_repo, DatasetFactory())

        await archive_use_case.execute(dataset.dataset_id, request_by_alice)

        locks = await lock_repo.list_for_dataset(dataset.dataset_id)
        assert locks[0].info == archiving_lock_info(False)
        assert locks[0].info == "Archiving the dataset; "

    @pytest.mark.asyncio
    async def test_default_workflow_takes_over(
        self,
        archive_use_case,
        dataset_repo,
        lock_repo,
        workflow_engine_repo,
        finalize_dispatcher,
        request_by_alice,
    ) -> None:
        workflow_engine_repo.default_workflows[
            TriggerType.ARCHIVE_DATASET
        ] = CURATION
        dataset = await seed(dataset_repo, DatasetFactory())

        result = await archive_use_case.execute(
            dataset.dataset_id, request_by_alice
        )
        dispatched = await archive_use_case.on_success(
            result, request_by_alice
        )

        assert result.status == ArchiveStatus.WORKFLOW
        assert result.is_workflow
        assert dispatched is False
        assert finalize_dispatcher.dispatched == []
        assert await lock_reasons(lock_repo, dataset.dataset_id) == []

        [(workflow, context, blocking)] = workflow_engine_repo.started
        assert workflow == CURATION
        assert blocking is True
        assert context.dataset_id == dataset.dataset_id
        assert context.trigger == TriggerType.ARCHIVE_DATASET
        assert context.user_identifier == "@alice"
        assert context.superuser is False
        assert context.next_version_number == 1
        assert context.next_minor_version_number == 0

    @pytest.mark.asyncio
    async def test_save_failure_releases_finalize_lock(
        self, archive_use_case, dataset_repo, lock_repo, request_by_alice
    ) -> None:
        dataset = await seed(dataset_repo, DatasetFactory())

        with patch.object(
            dataset_repo,
            "save",
            AsyncMock(side_effect=PersistenceConflictError("conflict")),
        ):
            with pytest.raises(PersistenceConflictError):
                await archive_use_case.execute(
                    dataset.dataset_id, request_by_alice
                )

        assert await lock_reasons(lock_repo, dataset.dataset_id) == []

    @pytest.mark.asyncio
    async def test_rejected_precondition_changes_nothing(
        self, archive_use_case, dataset_repo, lock_repo, request_by_alice
    ) -> None:
        dataset = DatasetFactory(
            versions=[
                DatasetVersionFactory(
                    terms_of_use=TermsFactory(license=None)
                )
            ]
        )
        await seed(dataset_repo, dataset)

        with pytest.raises(IllegalCommandError) as excinfo:
            await archive_use_case.execute(
                dataset.dataset_id, request_by_alice
            )

        assert excinfo.value.command == ARCHIVE_COMMAND
        assert await lock_reasons(lock_repo, dataset.dataset_id) == []
        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.latest_version.version_number is None
        assert stored.revision == 0

    @pytest.mark.asyncio
    async def test_durable_lock_blocks_second_kick_off(
        self, archive_use_case, dataset_repo, request_by_alice
    ) -> None:
        dataset = await seed(dataset_repo, DatasetFactory())
        await archive_use_case.execute(dataset.dataset_id, request_by_alice)

        with pytest.raises(IllegalCommandError) as excinfo:
            await archive_use_case.execute(
                dataset.dataset_id, request_by_alice
            )

        assert "Reason: finalizePublication." in excinfo.value.message

    @pytest.mark.asyncio
    async def test_metadata_rejection_stops_kick_off(
        self,
        archive_use_case,
        dataset_repo,
        lock_repo,
        validator_repo,
        settings,
        request_by_alice,
    ) -> None:
        settings.external_dataset_validation_enabled = True
        settings.dataset_validation_executable = "/opt/validate"
        validator_repo.accept = False
        dataset = await seed(dataset_repo, DatasetFactory())

        with pytest.raises(ValidationRejectedError):
            await archive_use_case.execute(
                dataset.dataset_id, request_by_alice
            )

        assert await lock_reasons(lock_repo, dataset.dataset_id) == []

    @pytest.mark.asyncio
    async def test_unknown_dataset(
        self, archive_use_case, request_by_alice
    ) -> None:
        with pytest.raises(DatasetNotFoundError):
            await archive_use_case.execute("missing", request_by_alice)

    @pytest.mark.asyncio
    async def test_externally_released_version_is_saved_unlocked(
        self, archive_use_case, dataset_repo, lock_repo, request_by_alice
    ) -> None:
        dataset = released_dataset()
        dataset.versions = dataset.versions[:1]
        await seed(dataset_repo, dataset)

        result = await archive_use_case.execute(
            dataset.dataset_id, request_by_alice, externally_released=True
        )

        assert result.status == ArchiveStatus.IN_PROGRESS
        assert await lock_reasons(lock_repo, dataset.dataset_id) == []


@pytest.mark.usefixtures("root_dataverse")
class TestFinalizeDatasetArchiveUseCase:
    async def kick_off(self, archive_use_case, dataset_repo, dataset):
        await seed(dataset_repo, dataset)
        await archive_use_case.execute(
            dataset.dataset_id,
            ArchiveRequest(user=User(identifier="@alice")),
        )

    @pytest.mark.asyncio
    async def test_first_release_is_archived_and_unlocked(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        dataverse_repo,
        lock_repo,
        storage_repo,
        version_user_repo,
        private_url_repo,
        request_by_alice,
    ) -> None:
        dataset = DatasetFactory()
        dataset.latest_version.terms_of_use.file_access_request = True
        store_files(storage_repo, dataset)
        await self.kick_off(archive_use_case, dataset_repo, dataset)
        await lock_repo.add(
            minimal_lock(dataset.dataset_id, LockReason.IN_REVIEW)
        )
        private_url_repo.add(
            PrivateUrl(dataset_id=dataset.dataset_id, token="secret")
        )

        outcome = await finalize_use_case.execute(
            dataset.dataset_id, request_by_alice
        )

        stored = await dataset_repo.get(dataset.dataset_id)
        latest = stored.latest_version
        assert latest.state == VersionState.LONGTERM_ARCHIVED
        assert latest.release_time == FIXED_NOW
        assert latest.last_update_time == FIXED_NOW
        assert stored.publication_date == FIXED_NOW
        assert stored.release_user_id == "alice"
        assert stored.modification_time == FIXED_NOW
        assert stored.file_access_request is True
        assert (stored.version_number, stored.minor_version_number) == (1, 0)
        assert all(f.publication_date == FIXED_NOW for f in stored.files)
        assert outcome.newly_published_file_ids == [
            f.file_id for f in dataset.files
        ]
        assert await lock_reasons(lock_repo, dataset.dataset_id) == []
        assert await private_url_repo.get(dataset.dataset_id) is None

        [record] = version_user_repo.all()
        assert record.version_id == latest.version_id
        assert record.user_id == "alice"
        assert record.last_update_date == FIXED_NOW

        assert outcome.dataverses_to_index == ["dv-root"]
        root = await dataverse_repo.get("dv-root")
        assert [s.str_value for s in root.subjects] == ["Physics"]

    @pytest.mark.asyncio
    async def test_on_success_fans_out_after_commit(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        storage_repo,
        role_repo,
        notification_repo,
        index_repo,
        request_by_alice,
    ) -> None:
        dataset = DatasetFactory()
        store_files(storage_repo, dataset)
        await self.kick_off(archive_use_case, dataset_repo, dataset)
        role_repo.assign(
            "@bob", dataset.dataset_id, [Permission.VIEW_UNPUBLISHED_DATASET]
        )

        outcome = await finalize_use_case.execute(
            dataset.dataset_id, request_by_alice
        )
        outcome = await finalize_use_case.on_success(outcome)

        assert outcome.fan_out.succeeded
        assert outcome.fan_out.notified_user_ids == ["bob"]
        assert [n.user_id for n in notification_repo.sent] == ["bob"]
        assert index_repo.indexed_datasets == [dataset.dataset_id]
        assert index_repo.indexed_dataverses == ["dv-root"]

    @pytest.mark.asyncio
    async def test_second_version_keeps_first_publication(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        storage_repo,
        request_by_alice,
    ) -> None:
        first_publication = datetime(2020, 1, 1, tzinfo=timezone.utc)
        dataset = released_dataset(
            publication_date=first_publication, release_user_id="carol"
        )
        dataset.files.append(DataFileFactory())
        store_files(storage_repo, dataset)
        await self.kick_off(archive_use_case, dataset_repo, dataset)

        outcome = await finalize_use_case.execute(
            dataset.dataset_id, request_by_alice
        )

        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.publication_date == first_publication
        assert stored.release_user_id == "carol"
        assert stored.versions[0].state == VersionState.RELEASED
        assert stored.latest_version.friendly_version_number == "2.0"
        assert stored.version_number == 2
        assert outcome.newly_published_file_ids == [dataset.files[1].file_id]

    @pytest.mark.asyncio
    async def test_embargo_citation_date_on_first_release(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        storage_repo,
        settings,
        request_by_alice,
    ) -> None:
        settings.embargo_citation_date_enabled = True
        dataset = DatasetFactory(
            files=[
                DataFileFactory(
                    embargo=Embargo(date_available=date(2025, 3, 1))
                ),
                DataFileFactory(
                    embargo=Embargo(date_available=date(2026, 1, 15))
                ),
                DataFileFactory(),
            ]
        )
        store_files(storage_repo, dataset)
        await self.kick_off(archive_use_case, dataset_repo, dataset)

        await finalize_use_case.execute(dataset.dataset_id, request_by_alice)

        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.embargo_citation_date == datetime(
            2026, 1, 15, tzinfo=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_file_validation_failure_locks_dataset(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        lock_repo,
        storage_repo,
        failure_log_repo,
        request_by_alice,
    ) -> None:
        dataset = DatasetFactory()
        store_files(storage_repo, dataset, content=b"corrupted bytes")
        await self.kick_off(archive_use_case, dataset_repo, dataset)

        with pytest.raises(FileValidationFailedError) as excinfo:
            await finalize_use_case.execute(
                dataset.dataset_id, request_by_alice
            )
        await finalize_use_case.recover(dataset.dataset_id, excinfo.value)

        assert await lock_reasons(lock_repo, dataset.dataset_id) == [
            LockReason.FILE_VALIDATION_FAILED
        ]
        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.latest_version.state == VersionState.DRAFT
        assert stored.publication_date is None
        [entry] = await failure_log_repo.list_for_dataset(dataset.dataset_id)
        assert entry.startswith(f"{FINALIZE_COMMAND}: Finalizing the archive")

        with pytest.raises(IllegalCommandError) as rejected:
            await archive_use_case.execute(
                dataset.dataset_id, request_by_alice
            )
        assert "missing or corrupted" in rejected.value.message

    @pytest.mark.asyncio
    async def test_file_validation_disabled_skips_reads(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        storage_repo,
        settings,
        request_by_alice,
    ) -> None:
        settings.datafile_validation_on_publish_enabled = False
        dataset = DatasetFactory()
        await self.kick_off(archive_use_case, dataset_repo, dataset)

        await finalize_use_case.execute(dataset.dataset_id, request_by_alice)

        assert storage_repo.reads == {}

    @pytest.mark.asyncio
    async def test_concurrent_edit_fails_and_recover_unlocks(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        lock_repo,
        storage_repo,
        failure_log_repo,
        request_by_alice,
    ) -> None:
        dataset = DatasetFactory()
        store_files(storage_repo, dataset)
        await self.kick_off(archive_use_case, dataset_repo, dataset)
        original_get = dataset_repo.get

        async def get_then_edit_concurrently(dataset_id):
            loaded = await original_get(dataset_id)
            concurrent = await original_get(dataset_id)
            concurrent.thumbnail_file_id = concurrent.files[0].file_id
            await dataset_repo.save(concurrent)
            return loaded

        with patch.object(
            dataset_repo, "get", side_effect=get_then_edit_concurrently
        ):
            with pytest.raises(PersistenceConflictError) as excinfo:
                await finalize_use_case.execute(
                    dataset.dataset_id, request_by_alice
                )

        assert await lock_reasons(lock_repo, dataset.dataset_id) == [
            LockReason.FINALIZE_PUBLICATION
        ]

        await finalize_use_case.recover(dataset.dataset_id, excinfo.value)

        assert await lock_reasons(lock_repo, dataset.dataset_id) == []
        stored = await dataset_repo.get(dataset.dataset_id)
        assert stored.latest_version.state == VersionState.DRAFT
        [entry] = await failure_log_repo.list_for_dataset(dataset.dataset_id)
        assert "modified concurrently" in entry

    @pytest.mark.asyncio
    async def test_unnumbered_version_fails_structural_validation(
        self, finalize_use_case, dataset_repo, request_by_alice
    ) -> None:
        dataset = await seed(dataset_repo, DatasetFactory())

        with pytest.raises(IllegalCommandError) as excinfo:
            await finalize_use_case.execute(
                dataset.dataset_id, request_by_alice
            )

        assert excinfo.value.command == FINALIZE_COMMAND
        assert "version_number: not assigned" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_recover_for_missing_dataset_only_logs(
        self, finalize_use_case, failure_log_repo
    ) -> None:
        await finalize_use_case.recover(
            "missing", DatasetNotFoundError("gone", FINALIZE_COMMAND)
        )

        assert await failure_log_repo.list_for_dataset("missing") == [
            f"{FINALIZE_COMMAND}: Finalizing the archive of dataset missing "
            "failed: gone"
        ]

    @pytest.mark.asyncio
    async def test_subject_propagation_failure_is_not_fatal(
        self,
        archive_use_case,
        finalize_use_case,
        dataset_repo,
        dataverse_repo,
        storage_repo,
        failure_log_repo,
        request_by_alice,
    ) -> None:
        dataset = DatasetFactory()
        store_files(storage_repo, dataset)
        await self.kick_off(archive_use_case, dataset_repo, dataset)

        with patch.object(
            dataverse_repo,
            "save",
            AsyncMock(side_effect=OSError("dataverse store down")),
        ):
            outcome = await finalize_use_case.execute(
                dataset.dataset_id, request_by_alice
            )

        assert (
            outcome.dataset.latest_version.state
            == VersionState.LONGTERM_ARCHIVED
        )
        assert outcome.dataverses_to_index == []
        [entry] = await failure_log_repo.list_for_dataset(dataset.dataset_id)
        assert entry.startswith(
            f"{FINALIZE_COMMAND}: Post-publication indexing failed for "
            "Dataverse subject update."
        )
        assert "dataverse store down" in entry
