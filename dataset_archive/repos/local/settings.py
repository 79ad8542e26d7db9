"""
Local YAML-based implementation of SettingsRepository.

The settings file holds four top-level keys::

    settings:            # flat ArchiveSettings values
      datafile_validation_on_publish_enabled: true
      dataset_validation_size_limit: -1
    storage_drivers:     # driver id -> StorageDriverConfig values
      file: {type: file, base_path: /var/lib/dataverse/files}
      globus: {type: globus, managed: false}
    workflows:           # WorkflowDefinition list
      - workflow_id: curation
        name: Curation review
        steps: [{step_type: pause}]
    default_workflows:   # trigger -> workflow_id
      ArchiveDataset: curation

Environment variables named ARCHIVE_<SETTING> override ``settings`` values.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dataset_archive.config import ArchiveSettings
from dataset_archive.repositories import SettingsRepository

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = "~/.config/dataset-archive/settings.yaml"


class LocalSettingsRepository(SettingsRepository):
    """
    Loads ArchiveSettings from a YAML file, typically stored in the user's
    home directory or at the path named by ARCHIVE_SETTINGS_PATH.
    """

    def __init__(self, settings_path: Optional[str] = None):
        """
        Initialize with path to settings file.

        Args:
            settings_path: Path to YAML settings file, supports ~ expansion
        """
        settings_path = settings_path or os.environ.get(
            "ARCHIVE_SETTINGS_PATH", DEFAULT_SETTINGS_PATH
        )
        self.settings_path = Path(settings_path).expanduser()
        logger.debug(
            f"Initialized LocalSettingsRepository with path: "
            f"{self.settings_path}"
        )

    async def get_settings(self) -> ArchiveSettings:
        """Read the settings file; fall back to defaults when unusable."""
        values = self._load_values()
        settings = ArchiveSettings.from_mapping(values)
        logger.info(
            f"Loaded archive settings from {self.settings_path}",
            extra={
                "storage_drivers": list(settings.storage_drivers),
                "workflows": [w.workflow_id for w in settings.workflows],
            },
        )
        return settings

    def _load_values(self) -> Dict[str, Any]:
        if not self.settings_path.exists():
            logger.warning(f"Settings file not found: {self.settings_path}")
            return {}

        try:
            with open(self.settings_path, "r") as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(
                f"Failed to load settings from {self.settings_path}: {e}"
            )
            return {}

        if not config_data:
            logger.error(
                f"Settings file is empty or invalid YAML: "
                f"{self.settings_path}"
            )
            return {}

        if not isinstance(config_data, dict):
            logger.error(
                f"Settings file must contain a YAML dictionary: "
                f"{self.settings_path}"
            )
            return {}

        values: Dict[str, Any] = {}
        flat = config_data.get("settings") or {}
        if isinstance(flat, dict):
            values.update(flat)
        else:
            logger.error(
                f"'settings' must be a dictionary in settings file: "
                f"{self.settings_path}"
            )

        for key, expected in (
            ("storage_drivers", dict),
            ("workflows", list),
            ("default_workflows", dict),
        ):
            section = config_data.get(key)
            if section is None:
                continue
            if not isinstance(section, expected):
                logger.error(
                    f"'{key}' must be a {expected.__name__} in settings "
                    f"file: {self.settings_path}"
                )
                continue
            values[key] = section

        return values
