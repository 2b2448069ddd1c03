"""Shared models and enums for dotstate."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class EntryType(str, Enum):
    """Kinds of filesystem entries dotstate copies around."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class SymlinkIssueKind(str, Enum):
    """Reasons a symlink makes a directory unsafe to move into the store."""

    BROKEN = "broken"
    CIRCULAR = "circular"
    EXTERNAL = "external"
    LARGE_DIRECTORY = "large_directory"


@dataclass(frozen=True, slots=True)
class SymlinkIssue:
    """A problematic symlink found while scanning a directory."""

    kind: SymlinkIssueKind
    link: Path
    target: Path
    size: int | None = None

    def describe(self) -> str:
        if self.kind is SymlinkIssueKind.BROKEN:
            return f"Broken symlink '{self.link}' -> '{self.target}' (target does not exist)"
        if self.kind is SymlinkIssueKind.CIRCULAR:
            return f"Circular symlink '{self.link}' -> '{self.target}' (points back into its own tree)"
        if self.kind is SymlinkIssueKind.LARGE_DIRECTORY:
            size_mib = (self.size or 0) / (1024 * 1024)
            return (
                f"Symlink '{self.link}' -> '{self.target}' points to a large external directory "
                f"({size_mib:.1f} MiB)"
            )
        return f"Symlink '{self.link}' -> '{self.target}' points to a directory outside the synced tree"


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Every symlink issue found below a scan root."""

    issues: tuple[SymlinkIssue, ...] = ()

    @property
    def safe(self) -> bool:
        return not self.issues


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Verdict of a pre-flight check. Refusals are values, not exceptions."""

    safe: bool
    reason: str | None = None
    issues: tuple[SymlinkIssue, ...] = ()

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(safe=True)

    @classmethod
    def refuse(cls, reason: str, issues: tuple[SymlinkIssue, ...] = ()) -> "ValidationResult":
        return cls(safe=False, reason=reason, issues=issues)


class ManifestState(str, Enum):
    """Lifecycle of an in-memory profile manifest."""

    ABSENT = "absent"
    BACKFILLED = "backfilled"
    LOADED = "loaded"
    DIRTY = "dirty"
    SAVED = "saved"


class AddAction(str, Enum):
    """Outcome of adding a path to sync."""

    ADDED = "added"
    ALREADY_MANAGED = "already_managed"
    REFUSED = "refused"


@dataclass(frozen=True, slots=True)
class AddResult:
    """Result emitted when adding a path to the active profile."""

    relative_path: str
    action: AddAction
    source: Path
    managed: Path
    reason: str | None = None
    backup: Path | None = None


class RemoveAction(str, Enum):
    """Outcome of removing a path from sync."""

    RESTORED = "restored"
    DETACHED = "detached"
    NOT_MANAGED = "not_managed"


@dataclass(frozen=True, slots=True)
class RemoveResult:
    """Result emitted when a managed path is handed back to the home directory."""

    relative_path: str
    action: RemoveAction
    source: Path
    managed: Path


@dataclass(frozen=True, slots=True)
class SwitchResult:
    """Home links changed while moving from one profile to another."""

    previous: str
    target: str
    removed: tuple[str, ...] = ()
    linked: tuple[str, ...] = ()
    backup: Path | None = None

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.linked)
