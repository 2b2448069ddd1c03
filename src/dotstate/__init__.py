"""Core package for the dotstate project."""

from .cli import app, run
from .config import ConfigError, Settings
from .errors import (
    BackupError,
    DotstateError,
    InvalidPathError,
    ManifestError,
    MigrationError,
    ProfileNameError,
    ProfileNotFoundError,
    StorageError,
    SyncError,
)
from .manager import DotstateManager
from .manifest import Profile, ProfileManifest
from .membership import MembershipIndex
from .models import (
    AddAction,
    AddResult,
    RemoveAction,
    RemoveResult,
    ScanResult,
    SwitchResult,
    SymlinkIssue,
    SymlinkIssueKind,
    ValidationResult,
)
from .symlinks import scan_symlinks
from .validation import validate_before_sync, validate_symlink_creation

__all__ = [
    "ConfigError",
    "Settings",
    "DotstateManager",
    "DotstateError",
    "InvalidPathError",
    "StorageError",
    "BackupError",
    "MigrationError",
    "ManifestError",
    "ProfileNameError",
    "ProfileNotFoundError",
    "SyncError",
    "Profile",
    "ProfileManifest",
    "MembershipIndex",
    "AddAction",
    "AddResult",
    "RemoveAction",
    "RemoveResult",
    "ScanResult",
    "SwitchResult",
    "SymlinkIssue",
    "SymlinkIssueKind",
    "ValidationResult",
    "scan_symlinks",
    "validate_before_sync",
    "validate_symlink_creation",
    "app",
    "run",
]
