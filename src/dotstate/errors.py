"""Exception hierarchy for dotstate."""

from __future__ import annotations

from pathlib import Path


class DotstateError(RuntimeError):
    """Raised when dotstate encounters an unrecoverable state."""


class InvalidPathError(DotstateError, ValueError):
    """Raised when a user-supplied relative path cannot be managed."""


class StorageError(DotstateError):
    """A filesystem operation failed on ``path``."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class BackupError(StorageError):
    """Copying an original into a backup session failed."""


class MigrationError(StorageError):
    """A versioned file could not be rewritten; its sidecar backup was kept."""


class ManifestError(DotstateError):
    """The profile manifest could not be parsed or has an unsupported version."""


class ProfileNotFoundError(DotstateError):
    """A named profile is absent from the manifest."""


class ProfileNameError(DotstateError, ValueError):
    """A profile name violates the naming rules."""


class SyncError(DotstateError):
    """A step of the add/remove sequence failed after validation passed."""

    def __init__(self, message: str, backup_session: Path | None = None) -> None:
        if backup_session is not None:
            message = f"{message}. The original is preserved in '{backup_session}'."
        super().__init__(message)
        self.backup_session = backup_session
