"""
Temporal worker that runs the archive workflows and activities.
"""

import asyncio
import logging
import os
from typing import Any, Callable, List, Optional

from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.service import RPCError
from temporalio.worker import Worker

from .repos.local.settings import LocalSettingsRepository
from .repos.minio.client import create_minio_client
from .repos.temporal.activities import (
    TemporalLocalMetadataValidatorRepository,
    TemporalLocalSettingsRepository,
    TemporalMinioDatasetRepository,
    TemporalMinioDatasetVersionUserRepository,
    TemporalMinioDataverseRepository,
    TemporalMinioLockRepository,
    TemporalMinioNotificationRepository,
    TemporalMinioOnSuccessFailureLogRepository,
    TemporalMinioPrivateUrlRepository,
    TemporalMinioRoleAssignmentRepository,
    TemporalMinioSearchIndexRepository,
    TemporalMinioStorageRepository,
)
from .repos.temporal.decorators import discover_protocol_methods
from .workflows import (
    TASK_QUEUE,
    ArchiveDatasetWorkflow,
    FinalizeDatasetArchiveWorkflow,
)

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure logging based on environment variables"""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get(
        "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        print(f"Invalid log level: {log_level}, defaulting to INFO")
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        force=True,  # Override any existing configuration
    )

    logger.info(
        "Logging configured",
        extra={"log_level": log_level, "numeric_level": numeric_level},
    )


async def get_temporal_client_with_retries(
    endpoint: str, attempts: int = 10, delay: int = 5
) -> Client:
    """Attempt to connect to Temporal with retries."""
    logger.debug(
        "Attempting to connect to Temporal",
        extra={
            "endpoint": endpoint,
            "max_attempts": attempts,
            "delay_seconds": delay,
        },
    )

    for attempt in range(attempts):
        try:
            client = await Client.connect(
                endpoint,
                data_converter=pydantic_data_converter,
                namespace="default",
            )
            logger.info(
                "Successfully connected to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "data_converter_type": type(
                        client.data_converter
                    ).__name__,
                },
            )
            return client
        except RPCError as e:
            logger.warning(
                "Failed to connect to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "error": str(e),
                    "retry_in_seconds": delay,
                },
            )
            if attempt + 1 == attempts:
                logger.error(
                    "All connection attempts to Temporal failed",
                    extra={"endpoint": endpoint, "total_attempts": attempts},
                )
                raise
            await asyncio.sleep(delay)

    raise RuntimeError("Failed to connect to Temporal after all attempts")


def activity_methods(repository: Any) -> List[Callable[..., Any]]:
    """Bound activity methods of a Temporal repository wrapper."""
    return [
        getattr(repository, name)
        for name in discover_protocol_methods(type(repository).__mro__)
    ]


async def build_activities(
    settings_path: Optional[str] = None,
) -> List[Callable[..., Any]]:
    minio_client = create_minio_client()
    settings = await LocalSettingsRepository(settings_path).get_settings()

    repositories = [
        TemporalMinioDatasetRepository(minio_client),
        TemporalMinioDataverseRepository(minio_client),
        TemporalMinioLockRepository(minio_client),
        TemporalMinioDatasetVersionUserRepository(minio_client),
        TemporalMinioPrivateUrlRepository(minio_client),
        TemporalMinioRoleAssignmentRepository(minio_client),
        TemporalMinioNotificationRepository(minio_client),
        TemporalMinioSearchIndexRepository(minio_client),
        TemporalMinioOnSuccessFailureLogRepository(minio_client),
        TemporalMinioStorageRepository(minio_client, settings),
        TemporalLocalMetadataValidatorRepository(
            success_marker=settings.validator_success_marker,
            timeout_seconds=settings.validator_timeout_seconds,
        ),
        TemporalLocalSettingsRepository(settings_path),
    ]

    activities: List[Callable[..., Any]] = []
    for repository in repositories:
        activities.extend(activity_methods(repository))
    return activities


async def run_worker(
    temporal_address: Optional[str] = None,
    task_queue: str = TASK_QUEUE,
) -> None:
    """Run the Temporal worker"""
    setup_logging()

    if temporal_address is None:
        temporal_address = os.environ.get(
            "TEMPORAL_ADDRESS", "localhost:7233"
        )
    logger.info(
        "Starting archive worker",
        extra={
            "temporal_address": temporal_address,
            "task_queue": task_queue,
        },
    )

    client = await get_temporal_client_with_retries(temporal_address)
    activities = await build_activities()

    logger.info(
        "Creating Temporal worker",
        extra={
            "task_queue": task_queue,
            "workflow_count": 2,
            "activity_count": len(activities),
            "data_converter_type": type(client.data_converter).__name__,
        },
    )

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=[ArchiveDatasetWorkflow, FinalizeDatasetArchiveWorkflow],
        activities=activities,
    )

    logger.info("Starting worker execution")
    await worker.run()


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
