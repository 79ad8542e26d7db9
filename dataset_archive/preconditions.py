"""
Argument and permission checks run before a dataset enters publication.

The checks are pure: they read the dataset, its host dataverse and the
request, and raise IllegalCommandError for the first rule that fails.
Nothing is mutated.
"""

import logging

from .domain import (
    ARCHIVE_COMMAND,
    ArchiveRequest,
    Dataset,
    Dataverse,
    LockReason,
)
from .errors import IllegalCommandError
from .locks import LockRegistry

logger = logging.getLogger(__name__)

BLOCKING_LOCK_REASONS = (
    LockReason.INGEST,
    LockReason.FINALIZE_PUBLICATION,
    LockReason.EDIT_IN_PROGRESS,
)


def verify_archive_preconditions(
    dataset: Dataset,
    host: Dataverse,
    request: ArchiveRequest,
    locks: LockRegistry,
    externally_released: bool = False,
) -> None:
    """Reject the kick-off when publishing the dataset makes no sense.

    Args:
        dataset: The dataset to publish, with its current lock set
        host: The dataverse that owns the dataset
        request: The caller and the workflow invocation it runs in
        locks: Lock registry used to match a caller's own workflow lock
        externally_released: True when an external system already
            released the latest version (imports, migrations)

    Raises:
        IllegalCommandError: naming the first failing condition
    """
    if not host.released:
        _reject(
            "This dataset may not be published because its host dataverse "
            f"({host.alias}) has not been published.",
            dataset,
        )

    if not request.user.authenticated:
        _reject(
            "Only authenticated users can release a Dataset. "
            "Please authenticate and try again.",
            dataset,
        )

    terms = dataset.latest_version.terms_of_use
    if terms is None or not terms.has_license_or_terms:
        _reject(
            "Dataset must have a valid license or Custom Terms Of Use "
            "configured before it can be published.",
            dataset,
        )

    foreign_workflow_lock = dataset.is_locked_for(
        LockReason.WORKFLOW
    ) and not locks.is_matching_workflow_lock(
        dataset,
        request.user.identifier,
        request.workflow_invocation_id,
    )
    if foreign_workflow_lock or any(
        dataset.is_locked_for(reason) for reason in BLOCKING_LOCK_REASONS
    ):
        reasons = ",".join(lock.reason.value for lock in dataset.locks)
        _reject(
            f"This dataset is locked. Reason: {reasons}. "
            "Please try publishing later.",
            dataset,
        )

    if dataset.is_locked_for(LockReason.FILE_VALIDATION_FAILED):
        _reject(
            "This dataset cannot be archived because some files have been "
            "found missing or corrupted. . Please contact support to "
            "address this.",
            dataset,
        )

    latest = dataset.latest_version
    if externally_released:
        if not latest.released:
            _reject(
                f"Latest version of dataset {dataset.global_id} is not "
                "marked as released.",
                dataset,
            )
    elif latest.released:
        _reject(
            f"Latest version of dataset {dataset.global_id} is already "
            "released. Only draft versions can be released.",
            dataset,
        )


def _reject(message: str, dataset: Dataset) -> None:
    logger.info(
        "Archive request rejected",
        extra={"dataset_id": dataset.dataset_id, "reason": message},
    )
    raise IllegalCommandError(message, ARCHIVE_COMMAND)
