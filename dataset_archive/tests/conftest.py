from datetime import datetime
from typing import Callable

import pytest

from dataset_archive.config import ArchiveSettings
from dataset_archive.domain import ArchiveRequest, Dataverse, User
from dataset_archive.repos.memory import (
    MemoryDatasetRepository,
    MemoryDatasetVersionUserRepository,
    MemoryDataverseRepository,
    MemoryFinalizeDispatcher,
    MemoryLockRepository,
    MemoryMetadataValidatorRepository,
    MemoryNotificationRepository,
    MemoryOnSuccessFailureLogRepository,
    MemoryPrivateUrlRepository,
    MemoryRoleAssignmentRepository,
    MemorySearchIndexRepository,
    MemorySettingsRepository,
    MemoryStorageRepository,
    MemoryWorkflowEngineRepository,
)
from dataset_archive.tests.factories import FIXED_NOW, DataverseFactory
from dataset_archive.usecase import (
    ArchiveDatasetUseCase,
    FinalizeDatasetArchiveUseCase,
)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def settings() -> ArchiveSettings:
    return ArchiveSettings()


@pytest.fixture
def request_by_alice() -> ArchiveRequest:
    return ArchiveRequest(user=User(identifier="@alice"))


@pytest.fixture
def dataset_repo() -> MemoryDatasetRepository:
    return MemoryDatasetRepository()


@pytest.fixture
def dataverse_repo() -> MemoryDataverseRepository:
    return MemoryDataverseRepository()


@pytest.fixture
def lock_repo() -> MemoryLockRepository:
    return MemoryLockRepository()


@pytest.fixture
def version_user_repo() -> MemoryDatasetVersionUserRepository:
    return MemoryDatasetVersionUserRepository()


@pytest.fixture
def private_url_repo() -> MemoryPrivateUrlRepository:
    return MemoryPrivateUrlRepository()


@pytest.fixture
def role_repo() -> MemoryRoleAssignmentRepository:
    return MemoryRoleAssignmentRepository()


@pytest.fixture
def notification_repo() -> MemoryNotificationRepository:
    return MemoryNotificationRepository()


@pytest.fixture
def index_repo() -> MemorySearchIndexRepository:
    return MemorySearchIndexRepository()


@pytest.fixture
def failure_log_repo() -> MemoryOnSuccessFailureLogRepository:
    return MemoryOnSuccessFailureLogRepository()


@pytest.fixture
def storage_repo(settings: ArchiveSettings) -> MemoryStorageRepository:
    return MemoryStorageRepository(settings)


@pytest.fixture
def settings_repo(settings: ArchiveSettings) -> MemorySettingsRepository:
    return MemorySettingsRepository(settings)


@pytest.fixture
def validator_repo() -> MemoryMetadataValidatorRepository:
    return MemoryMetadataValidatorRepository()


@pytest.fixture
def workflow_engine_repo() -> MemoryWorkflowEngineRepository:
    return MemoryWorkflowEngineRepository()


@pytest.fixture
def finalize_dispatcher() -> MemoryFinalizeDispatcher:
    return MemoryFinalizeDispatcher()


@pytest.fixture
async def root_dataverse(
    dataverse_repo: MemoryDataverseRepository,
) -> Dataverse:
    """The released dataverse that owns the factory-built datasets."""
    root = DataverseFactory(dataverse_id="dv-root", alias="root")
    await dataverse_repo.save(root)
    dataverse_repo.save_count = 0
    return root


@pytest.fixture
def archive_use_case(
    dataset_repo: MemoryDatasetRepository,
    dataverse_repo: MemoryDataverseRepository,
    lock_repo: MemoryLockRepository,
    validator_repo: MemoryMetadataValidatorRepository,
    workflow_engine_repo: MemoryWorkflowEngineRepository,
    finalize_dispatcher: MemoryFinalizeDispatcher,
    settings_repo: MemorySettingsRepository,
    clock: Callable[[], datetime],
) -> ArchiveDatasetUseCase:
    return ArchiveDatasetUseCase(
        dataset_repo=dataset_repo,
        dataverse_repo=dataverse_repo,
        lock_repo=lock_repo,
        validator_repo=validator_repo,
        workflow_engine_repo=workflow_engine_repo,
        finalize_dispatcher=finalize_dispatcher,
        settings_repo=settings_repo,
        clock=clock,
    )


@pytest.fixture
def finalize_use_case(
    dataset_repo: MemoryDatasetRepository,
    dataverse_repo: MemoryDataverseRepository,
    lock_repo: MemoryLockRepository,
    version_user_repo: MemoryDatasetVersionUserRepository,
    private_url_repo: MemoryPrivateUrlRepository,
    role_repo: MemoryRoleAssignmentRepository,
    notification_repo: MemoryNotificationRepository,
    index_repo: MemorySearchIndexRepository,
    failure_log_repo: MemoryOnSuccessFailureLogRepository,
    storage_repo: MemoryStorageRepository,
    settings_repo: MemorySettingsRepository,
    clock: Callable[[], datetime],
) -> FinalizeDatasetArchiveUseCase:
    return FinalizeDatasetArchiveUseCase(
        dataset_repo=dataset_repo,
        dataverse_repo=dataverse_repo,
        lock_repo=lock_repo,
        version_user_repo=version_user_repo,
        private_url_repo=private_url_repo,
        role_repo=role_repo,
        notification_repo=notification_repo,
        index_repo=index_repo,
        failure_log_repo=failure_log_repo,
        storage_repo=storage_repo,
        settings_repo=settings_repo,
        clock=clock,
    )
