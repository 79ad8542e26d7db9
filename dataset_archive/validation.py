"""
Runtime validation utilities for architectural contracts and dataset state.

This module provides functions to validate:

- Repository implementations against their Protocols using
  @runtime_checkable, so configuration errors surface when a use case is
  constructed rather than halfway through a publication.
- The structural state of a dataset version before it is published.
"""

import logging
from typing import List, Type, TypeVar

from pydantic import ValidationError

from .domain import DatasetVersion
from .errors import IllegalCommandError

logger = logging.getLogger(__name__)

P = TypeVar("P")


class RepositoryValidationError(Exception):
    """Raised when repository contract validation fails"""

    pass


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Validate that a repository implementation satisfies a protocol contract.

    Args:
        repository: The repository implementation to validate
        protocol: The protocol class to validate against

    Raises:
        RepositoryValidationError: If validation fails
    """
    if not isinstance(repository, protocol):
        error_message = (
            f"Repository {type(repository).__name__} does not implement "
            f"{protocol.__name__} protocol. Missing or incorrect methods."
        )

        logger.error(
            "Repository protocol validation failed",
            extra={
                "repository_type": type(repository).__name__,
                "protocol_name": protocol.__name__,
            },
        )

        raise RepositoryValidationError(error_message)

    logger.debug(
        "Repository protocol validation passed",
        extra={
            "repository_type": type(repository).__name__,
            "protocol_name": protocol.__name__,
        },
    )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """
    Validate and return a repository with proper type annotation.

    Raises:
        RepositoryValidationError: If validation fails
    """
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def version_constraint_violations(
    version: DatasetVersion, require_version_numbers: bool = False
) -> List[str]:
    """List what keeps a version from being published, empty when valid."""
    violations: List[str] = []

    try:
        DatasetVersion.model_validate(version.model_dump())
    except ValidationError as e:
        violations.extend(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )

    if require_version_numbers and (
        version.version_number is None
        or version.minor_version_number is None
    ):
        violations.append("version_number: not assigned")

    if version.terms_of_use is None:
        violations.append("terms_of_use: missing")

    for field in version.dataset_fields:
        if field.required and field.is_empty:
            violations.append(f"{field.type_name}: required value missing")

    return violations


def validate_version_or_die(
    version: DatasetVersion,
    command: str,
    require_version_numbers: bool = False,
) -> None:
    """
    Structurally re-validate a dataset version.

    Raises:
        IllegalCommandError: naming every violated constraint
    """
    violations = version_constraint_violations(
        version, require_version_numbers
    )
    if violations:
        logger.warning(
            "Dataset version failed structural validation",
            extra={
                "version_id": version.version_id,
                "violations": violations,
                "command": command,
            },
        )
        raise IllegalCommandError(
            "Validation error(s) in dataset version "
            f"{version.version_id}: " + "; ".join(violations),
            command,
        )
