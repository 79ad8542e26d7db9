"""
External metadata validation of a dataset before it is published.

The check is switched on by ``external_dataset_validation_enabled``.
Superusers skip it when ``external_validation_admin_override_enabled`` is
also set. The actual call-out goes through MetadataValidatorRepository so
that the workflow engine can run it as an activity.
"""

import logging

from .config import ArchiveSettings
from .domain import ArchiveRequest, Dataset
from .errors import ValidationRejectedError
from .repositories import MetadataValidatorRepository
from .validation import ensure_repository_protocol

logger = logging.getLogger(__name__)


class ExternalMetadataValidator:
    """Runs the configured validator executable against a dataset."""

    def __init__(
        self, validator_repo: MetadataValidatorRepository, command: str
    ) -> None:
        self.validator_repo = ensure_repository_protocol(
            validator_repo, MetadataValidatorRepository
        )
        self.command = command

    def is_required(
        self, settings: ArchiveSettings, request: ArchiveRequest
    ) -> bool:
        if not settings.external_dataset_validation_enabled:
            return False
        admin_override = (
            request.user.superuser
            and settings.external_validation_admin_override_enabled
        )
        return not admin_override

    async def validate_or_reject(
        self,
        dataset: Dataset,
        settings: ArchiveSettings,
        request: ArchiveRequest,
    ) -> None:
        """Raise ValidationRejectedError unless the validator accepts.

        A missing executable setting counts as a rejection, as does any
        failure to run the executable.
        """
        if not self.is_required(settings, request):
            logger.debug(
                "External metadata validation not required",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "enabled": settings.external_dataset_validation_enabled,
                    "superuser": request.user.superuser,
                },
            )
            return

        executable = settings.dataset_validation_executable
        accepted = False
        if executable:
            accepted = await self.validator_repo.validate(dataset, executable)
        else:
            logger.error(
                "External metadata validation enabled without an executable",
                extra={"dataset_id": dataset.dataset_id},
            )

        if not accepted:
            logger.info(
                "Dataset rejected by external metadata validation",
                extra={
                    "dataset_id": dataset.dataset_id,
                    "executable": executable,
                },
            )
            raise ValidationRejectedError(
                settings.dataset_validation_failure_msg, self.command
            )

        logger.info(
            "Dataset accepted by external metadata validation",
            extra={"dataset_id": dataset.dataset_id},
        )
