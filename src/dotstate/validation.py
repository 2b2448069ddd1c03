"""Pre-flight validation run before any path is moved into the store.

Every check here is read-only except the link-creation dry-run, which creates
and removes what it probes. A refusal is returned as an unsafe
``ValidationResult``; exceptions are reserved for programming errors.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from .errors import InvalidPathError
from .membership import MembershipIndex
from .models import ValidationResult
from .paths import normalize
from .safety import find_nested_git_repo, is_safe_to_add
from .symlinks import LARGE_DIRECTORY_THRESHOLD, scan_symlinks

logger = logging.getLogger(__name__)

WRITE_PROBE_PREFIX = ".dotstate_write_test-"


def validate_before_sync(
    relative_path: str,
    full_path: Path,
    managed: MembershipIndex | Iterable[str],
    store_path: Path,
    *,
    size_threshold: int = LARGE_DIRECTORY_THRESHOLD,
) -> ValidationResult:
    """Decide whether ``full_path`` (``relative_path`` under home) may be synced.

    Checks run from the most specific to the most general so the first refusal
    gives the clearest reason.
    """

    logger.debug("Validating path before sync: %s (%s)", relative_path, full_path)
    index = managed if isinstance(managed, MembershipIndex) else MembershipIndex(managed)

    try:
        normalized = normalize(relative_path)
    except InvalidPathError as exc:
        return ValidationResult.refuse(str(exc))

    if index.contains_exact(normalized):
        return ValidationResult.refuse(f"File or directory is already synced: {normalized}")

    if index.is_inside_managed(normalized):
        return ValidationResult.refuse(
            f"Cannot sync '{normalized}': it is already inside a managed directory.\n\n"
            "If you want to sync this file, remove the parent directory from sync first."
        )

    is_directory = full_path.is_dir()
    if is_directory and index.directory_contains_managed(normalized):
        return ValidationResult.refuse(
            f"Cannot sync directory '{normalized}': it contains files that are already managed.\n\n"
            "If you want to sync this directory, remove the individual files from sync first."
        )

    safe, reason = is_safe_to_add(full_path, store_path)
    if not safe:
        return ValidationResult.refuse(reason or "Path is not safe to add")

    if not is_directory:
        return ValidationResult.ok()

    nested = find_nested_git_repo(full_path)
    if nested is not None:
        return ValidationResult.refuse(
            f"Cannot sync directory '{normalized}': it contains a nested git repository at '{nested}'.\n\n"
            "You cannot have a git repository inside a git repository."
        )

    scan = scan_symlinks(full_path, size_threshold=size_threshold)
    if not scan.safe:
        details = "\n".join(f"  - {issue.describe()}" for issue in scan.issues)
        return ValidationResult.refuse(
            f"Cannot sync directory '{normalized}': it contains unsafe symlinks:\n{details}",
            issues=scan.issues,
        )

    return ValidationResult.ok()


def validate_symlink_creation(
    original_source: Path,
    symlink_source: Path,
    target: Path,
) -> ValidationResult:
    """Dry-run the destructive step: can ``target`` become a link to ``symlink_source``?

    ``original_source`` is the file that will be copied into the store. Missing
    parents of ``target`` are created for the write probe and removed again.
    """

    if not original_source.exists():
        return ValidationResult.refuse(f"Source file does not exist: {original_source}")

    if os.path.abspath(symlink_source) == os.path.abspath(target):
        return ValidationResult.refuse(f"Symlink '{target}' would point at itself")

    parent = target.parent
    if parent.exists() and not parent.is_dir():
        return ValidationResult.refuse(f"Target parent exists but is not a directory: {parent}")

    created: list[Path] = []
    try:
        try:
            _create_missing_directories(parent, created)
        except OSError as exc:
            return ValidationResult.refuse(f"Cannot create parent directory '{parent}': {exc}")

        try:
            fd, probe_name = tempfile.mkstemp(prefix=WRITE_PROBE_PREFIX, dir=parent)
            os.close(fd)
            os.unlink(probe_name)
        except OSError as exc:
            return ValidationResult.refuse(f"Cannot write to target location '{parent}': {exc}")
    finally:
        for directory in reversed(created):
            try:
                directory.rmdir()
            except OSError as exc:
                logger.warning("Could not remove probe directory %s: %s", directory, exc)

    return ValidationResult.ok()


def _create_missing_directories(directory: Path, created: list[Path]) -> None:
    """Create ``directory`` and its missing ancestors, recording them outermost first."""

    missing: list[Path] = []
    current = directory
    while not current.exists():
        if current.is_symlink():
            raise NotADirectoryError(f"'{current}' is a broken symlink")
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent

    for path in reversed(missing):
        path.mkdir()
        created.append(path)
