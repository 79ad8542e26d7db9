"""
Local repository implementations: YAML settings, filesystem storage and
the metadata validator subprocess.
"""

from .metadata_validator import LocalMetadataValidatorRepository
from .settings import LocalSettingsRepository
from .storage import LocalStorageRepository

__all__ = [
    "LocalMetadataValidatorRepository",
    "LocalSettingsRepository",
    "LocalStorageRepository",
]
