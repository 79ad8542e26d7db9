"""
Configuration models for the archive engine.

Settings are read once at command entry. Values come from a YAML settings
file (see repos/local/settings.py) and may be overridden per key by
environment variables named ARCHIVE_<SETTING_NAME_IN_UPPER_CASE>.
"""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from .domain import TriggerType, WorkflowDefinition

logger = logging.getLogger(__name__)

ENV_PREFIX = "ARCHIVE_"
UNLIMITED = -1

# Storage driver types whose bytes the repository can read back itself.
DATAVERSE_ACCESSIBLE_TYPES = frozenset({"file", "s3", "swift"})


def parse_long_limit(value: Optional[Any], default: int) -> int:
    """Parse a numeric limit, falling back to the default when unparseable.

    None, empty strings and non-numeric text yield ``default``; negative
    numbers are returned as-is (``-1`` conventionally means unbounded).
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        logger.debug(
            "Unparseable limit value, using default",
            extra={"value": value, "default": default},
        )
        return default


def parse_bool(value: Optional[Any], default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class StorageDriverConfig(BaseModel):
    """Configuration of one storage driver, keyed by driver id."""

    driver_id: str
    type: str = "file"
    label: str = ""
    managed: bool = False
    base_path: Optional[str] = Field(
        None, description="Root directory for 'file' drivers"
    )
    bucket_name: Optional[str] = Field(
        None, description="Bucket for 's3' drivers"
    )

    @property
    def dataverse_accessible(self) -> bool:
        return self.type in DATAVERSE_ACCESSIBLE_TYPES or self.managed


class ArchiveSettings(BaseModel):
    """Feature flags and limits that steer the archive commands."""

    external_dataset_validation_enabled: bool = False
    external_validation_admin_override_enabled: bool = False
    dataset_validation_executable: Optional[str] = None
    dataset_validation_failure_msg: str = (
        "This dataset did not pass the external metadata validation."
    )
    datafile_validation_on_publish_enabled: bool = True
    dataset_validation_size_limit: int = UNLIMITED
    file_validation_size_limit: int = UNLIMITED
    embargo_citation_date_enabled: bool = False
    validator_success_marker: str = "success"
    validator_timeout_seconds: int = 60
    storage_drivers: Dict[str, StorageDriverConfig] = Field(
        default_factory=dict
    )
    workflows: List[WorkflowDefinition] = Field(default_factory=list)
    default_workflows: Dict[str, str] = Field(
        default_factory=dict,
        description="Trigger name -> workflow_id of the default workflow",
    )

    def storage_driver(self, driver_id: str) -> Optional[StorageDriverConfig]:
        return self.storage_drivers.get(driver_id)

    def default_workflow(
        self, trigger: TriggerType
    ) -> Optional[WorkflowDefinition]:
        workflow_id = self.default_workflows.get(trigger.value)
        if workflow_id is None:
            return None
        for workflow in self.workflows:
            if workflow.workflow_id == workflow_id:
                return workflow
        logger.warning(
            "Default workflow is not defined",
            extra={"trigger": trigger.value, "workflow_id": workflow_id},
        )
        return None

    def is_dataverse_accessible(self, driver_id: str) -> bool:
        """Unconfigured drivers are judged by their id as a type name."""
        driver = self.storage_driver(driver_id)
        if driver is None:
            return driver_id in DATAVERSE_ACCESSIBLE_TYPES
        return driver.dataverse_accessible

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ArchiveSettings":
        """Build settings from file values with environment overrides."""
        environ = os.environ if environ is None else environ
        merged: Dict[str, Any] = dict(values)

        for name, field in cls.model_fields.items():
            if name in {"storage_drivers", "workflows", "default_workflows"}:
                continue
            env_value = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if env_value is None:
                continue
            if field.annotation is bool:
                merged[name] = parse_bool(env_value, bool(field.default))
            elif field.annotation is int:
                merged[name] = parse_long_limit(env_value, field.default)
            else:
                merged[name] = env_value
            logger.debug(
                "Setting overridden from environment",
                extra={"setting": name},
            )

        for name in (
            "dataset_validation_size_limit",
            "file_validation_size_limit",
        ):
            if name in merged:
                merged[name] = parse_long_limit(merged[name], UNLIMITED)

        drivers = merged.get("storage_drivers") or {}
        merged["storage_drivers"] = {
            driver_id: (
                config
                if isinstance(config, StorageDriverConfig)
                else StorageDriverConfig(driver_id=driver_id, **config)
            )
            for driver_id, config in drivers.items()
        }
        return cls.model_validate(merged)
