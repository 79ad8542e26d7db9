"""
Operator CLI for the dataset archive.

    dataset-archive archive <dataset_id> --user <id>
    dataset-archive finalize <dataset_id> --user <id>
    dataset-archive resume <dataset_id>
    dataset-archive reject <dataset_id> --reason <text>
    dataset-archive unlock <dataset_id> --reason <lock reason>
    dataset-archive locks <dataset_id>

The kick-off runs in this process against the MinIO repositories; the
pre-archive workflow and the finalize phase run on the Temporal worker.
"""

import asyncio
import logging
import os
import sys
from typing import Optional

import click
from temporalio.client import Client

from dataset_archive.domain import ArchiveRequest, LockReason, User
from dataset_archive.errors import CommandError
from dataset_archive.repos.local.metadata_validator import (
    LocalMetadataValidatorRepository,
)
from dataset_archive.repos.local.settings import LocalSettingsRepository
from dataset_archive.repos.minio.client import create_minio_client
from dataset_archive.repos.minio.dataset import (
    MinioDatasetRepository,
    MinioDataverseRepository,
)
from dataset_archive.repos.minio.lock import MinioLockRepository
from dataset_archive.repos.temporal.client import (
    TemporalFinalizeDispatcher,
    TemporalWorkflowEngineRepository,
)
from dataset_archive.usecase import ArchiveDatasetUseCase
from dataset_archive.worker import get_temporal_client_with_retries
from dataset_archive.workflows import (
    ArchiveDatasetWorkflow,
    archive_workflow_id,
)

logger = logging.getLogger(__name__)

TEMPORAL_ADDRESS_HELP = (
    "Temporal server address (defaults to TEMPORAL_ADDRESS env var "
    "or localhost:7233)"
)


def _temporal_address(temporal_address: Optional[str]) -> str:
    if temporal_address is None:
        return os.environ.get("TEMPORAL_ADDRESS", "localhost:7233")
    return temporal_address


def create_archive_use_case(
    client: Client, settings_path: Optional[str] = None
) -> ArchiveDatasetUseCase:
    """Wire the kick-off use case to MinIO, Temporal and local settings."""
    minio_client = create_minio_client()
    settings_repo = LocalSettingsRepository(settings_path)
    return ArchiveDatasetUseCase(
        dataset_repo=MinioDatasetRepository(minio_client),
        dataverse_repo=MinioDataverseRepository(minio_client),
        lock_repo=MinioLockRepository(minio_client),
        validator_repo=LocalMetadataValidatorRepository(),
        workflow_engine_repo=TemporalWorkflowEngineRepository(
            client, settings_repo
        ),
        finalize_dispatcher=TemporalFinalizeDispatcher(client),
        settings_repo=settings_repo,
    )


async def _archive(
    dataset_id: str,
    request: ArchiveRequest,
    externally_released: bool,
    temporal_address: str,
    settings_path: Optional[str],
) -> None:
    client = await get_temporal_client_with_retries(
        temporal_address, attempts=3, delay=2
    )
    use_case = create_archive_use_case(client, settings_path)
    result = await use_case.execute(dataset_id, request, externally_released)
    dispatched = await use_case.on_success(result, request)

    version = result.dataset.latest_version.friendly_version_number
    click.echo(f"Dataset {result.dataset.global_id} version {version}")
    click.echo(f"Status: {result.status.value}")
    if dispatched:
        click.echo("Finalize dispatched.")
    elif result.is_workflow:
        click.echo(
            f"Pre-archive workflow {archive_workflow_id(dataset_id)} "
            "is running."
        )


async def _finalize(
    dataset_id: str, request: ArchiveRequest, temporal_address: str
) -> None:
    client = await get_temporal_client_with_retries(
        temporal_address, attempts=3, delay=2
    )
    await TemporalFinalizeDispatcher(client).dispatch_finalize(
        dataset_id, request
    )
    click.echo(f"Finalize dispatched for dataset {dataset_id}.")


async def _signal(
    dataset_id: str,
    temporal_address: str,
    reason: Optional[str] = None,
) -> None:
    client = await get_temporal_client_with_retries(
        temporal_address, attempts=3, delay=2
    )
    handle = client.get_workflow_handle_for(
        ArchiveDatasetWorkflow.run, archive_workflow_id(dataset_id)
    )
    if reason is None:
        await handle.signal(ArchiveDatasetWorkflow.resume)
        click.echo(f"Resumed workflow for dataset {dataset_id}.")
    else:
        await handle.signal(ArchiveDatasetWorkflow.reject, reason)
        click.echo(f"Rejected workflow for dataset {dataset_id}.")


async def _unlock(dataset_id: str, reason: LockReason) -> None:
    lock_repo = MinioLockRepository(create_minio_client())
    await lock_repo.remove(dataset_id, reason)
    click.echo(f"Removed {reason.value} lock from dataset {dataset_id}.")


async def _locks(dataset_id: str) -> None:
    lock_repo = MinioLockRepository(create_minio_client())
    locks = await lock_repo.list_for_dataset(dataset_id)
    if not locks:
        click.echo(f"Dataset {dataset_id} is not locked.")
        return
    for lock in locks:
        line = (
            f"{lock.reason.value}\t{lock.user_id}\t"
            f"{lock.created_at.isoformat()}"
        )
        if lock.info:
            line += f"\t{lock.info}"
        click.echo(line)


def _run(coro, failure: str) -> None:
    try:
        asyncio.run(coro)
    except CommandError as e:
        click.echo(f"{failure}: {e.message}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.error(f"{failure}: {str(e)}", exc_info=True)
        click.echo(f"{failure}: {str(e)}", err=True)
        sys.exit(1)


@click.group()
def cli():
    """Publish datasets into the long-term archive."""
    pass


@cli.command()
@click.argument("dataset_id")
@click.option("--user", "user_id", required=True, help="Issuing user")
@click.option(
    "--superuser", is_flag=True, help="Issue the command as a superuser"
)
@click.option(
    "--externally-released",
    is_flag=True,
    help="Record a version already released by an external system",
)
@click.option("--settings-path", default=None, help="Settings YAML file")
@click.option("--temporal-address", default=None, help=TEMPORAL_ADDRESS_HELP)
def archive(
    dataset_id: str,
    user_id: str,
    superuser: bool,
    externally_released: bool,
    settings_path: Optional[str],
    temporal_address: Optional[str],
) -> None:
    """Kick off the publication of a dataset's latest version."""
    request = ArchiveRequest(
        user=User(identifier=user_id, superuser=superuser)
    )
    _run(
        _archive(
            dataset_id,
            request,
            externally_released,
            _temporal_address(temporal_address),
            settings_path,
        ),
        "Archive failed",
    )


@cli.command()
@click.argument("dataset_id")
@click.option("--user", "user_id", required=True, help="Issuing user")
@click.option("--temporal-address", default=None, help=TEMPORAL_ADDRESS_HELP)
def finalize(
    dataset_id: str, user_id: str, temporal_address: Optional[str]
) -> None:
    """Dispatch the finalize phase for a dataset."""
    request = ArchiveRequest(user=User(identifier=user_id))
    _run(
        _finalize(dataset_id, request, _temporal_address(temporal_address)),
        "Finalize dispatch failed",
    )


@cli.command()
@click.argument("dataset_id")
@click.option("--temporal-address", default=None, help=TEMPORAL_ADDRESS_HELP)
def resume(dataset_id: str, temporal_address: Optional[str]) -> None:
    """Resume a paused pre-archive workflow."""
    _run(
        _signal(dataset_id, _temporal_address(temporal_address)),
        "Resume failed",
    )


@cli.command()
@click.argument("dataset_id")
@click.option("--reason", required=True, help="Why the dataset is rejected")
@click.option("--temporal-address", default=None, help=TEMPORAL_ADDRESS_HELP)
def reject(
    dataset_id: str, reason: str, temporal_address: Optional[str]
) -> None:
    """Reject a paused pre-archive workflow."""
    _run(
        _signal(dataset_id, _temporal_address(temporal_address), reason),
        "Reject failed",
    )


@cli.command()
@click.argument("dataset_id")
@click.option(
    "--reason",
    required=True,
    type=click.Choice([reason.value for reason in LockReason]),
    help="Reason of the lock to remove",
)
def unlock(dataset_id: str, reason: str) -> None:
    """Remove a lock from a dataset."""
    _run(_unlock(dataset_id, LockReason(reason)), "Unlock failed")


@cli.command()
@click.argument("dataset_id")
def locks(dataset_id: str) -> None:
    """List the locks held on a dataset."""
    _run(_locks(dataset_id), "Lock listing failed")


if __name__ == "__main__":
    cli()
