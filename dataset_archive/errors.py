"""
Exception hierarchy for archive commands.

Every failure raised by a command derives from CommandError and records
which command raised it, so workflow boundaries can log and record the
failure against the dataset without inspecting exception types.
"""

from typing import List, Optional


class CommandError(Exception):
    """A command could not complete."""

    def __init__(self, message: str, command: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.command = command


class IllegalCommandError(CommandError):
    """The command makes no sense for the current dataset state or caller."""

    pass


class ValidationRejectedError(IllegalCommandError):
    """The external metadata validator rejected the dataset."""

    pass


class FileValidationFailedError(CommandError):
    """Physical files failed checksum validation."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        failed_file_ids: Optional[List[str]] = None,
    ):
        super().__init__(message, command)
        self.failed_file_ids = failed_file_ids or []


class LockConflictError(CommandError):
    """A lock with the same reason is already held."""

    pass


class PersistenceConflictError(CommandError):
    """Another actor saved the entity since it was loaded."""

    pass


class DatasetNotFoundError(CommandError):
    pass
