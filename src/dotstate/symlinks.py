"""Recursive symlink scanner used before a directory is moved into the store.

The walk never dereferences a link: every entry is inspected with
``follow_symlinks=False`` and only real directories are descended into. Each
link found is classified as broken, circular, external or external-and-large;
valid links produce no issue. All issues are collected so the caller can show
the full list at once.

Depth is capped and directory identities (device, inode) are remembered, so a
bind-mounted loop cannot make the walk run forever. Read failures are logged
and the affected entry is skipped.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .models import ScanResult, SymlinkIssue, SymlinkIssueKind

logger = logging.getLogger(__name__)

MAX_SCAN_DEPTH = 50
LARGE_DIRECTORY_THRESHOLD = 100 * 1024 * 1024


def scan_symlinks(
    root: Path,
    *,
    size_threshold: int = LARGE_DIRECTORY_THRESHOLD,
    max_depth: int = MAX_SCAN_DEPTH,
) -> ScanResult:
    """Classify every symlink below ``root``."""

    try:
        canonical_root = Path(root).resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        logger.warning("Could not canonicalize %s, skipping symlink scan: %s", root, exc)
        return ScanResult()

    issues: list[SymlinkIssue] = []
    visited: set[tuple[int, int]] = set()
    _walk(canonical_root, canonical_root, 0, visited, issues, size_threshold, max_depth)
    return ScanResult(issues=tuple(issues))


def _walk(
    directory: Path,
    root: Path,
    depth: int,
    visited: set[tuple[int, int]],
    issues: list[SymlinkIssue],
    size_threshold: int,
    max_depth: int,
) -> None:
    if depth > max_depth:
        logger.warning("Symlink scan reached depth limit %d at %s", max_depth, directory)
        return

    try:
        stat_result = directory.stat()
        with os.scandir(directory) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except OSError as exc:
        logger.warning("Could not read %s during symlink scan: %s", directory, exc)
        return

    identity = (stat_result.st_dev, stat_result.st_ino)
    if identity in visited:
        logger.debug("Directory %s already visited, skipping", directory)
        return
    visited.add(identity)

    for entry in entries:
        path = Path(entry.path)
        try:
            is_link = entry.is_symlink()
            is_dir = not is_link and entry.is_dir(follow_symlinks=False)
        except OSError as exc:
            logger.warning("Could not stat %s during symlink scan: %s", path, exc)
            continue

        if is_link:
            issue = classify_symlink(path, root, size_threshold=size_threshold)
            if issue is not None:
                logger.debug("Symlink issue: %s", issue.describe())
                issues.append(issue)
        elif is_dir:
            _walk(path, root, depth + 1, visited, issues, size_threshold, max_depth)


def classify_symlink(
    link: Path,
    root: Path,
    *,
    size_threshold: int = LARGE_DIRECTORY_THRESHOLD,
) -> SymlinkIssue | None:
    """Return the issue ``link`` raises for a tree rooted at canonical ``root``.

    ``None`` means the link is acceptable. Links whose target is a file outside
    the tree are acceptable because they are dereferenced when copied.
    """

    try:
        raw_target = Path(os.readlink(link))
    except OSError as exc:
        logger.warning("Could not read symlink %s: %s", link, exc)
        return None

    target = raw_target if raw_target.is_absolute() else link.parent / raw_target
    if not os.path.exists(target):
        return SymlinkIssue(SymlinkIssueKind.BROKEN, link, target)

    try:
        canonical = target.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        logger.warning("Could not canonicalize target of %s: %s", link, exc)
        return None

    parent = link.parent
    if canonical == parent or canonical in parent.parents or canonical == root or canonical in root.parents:
        return SymlinkIssue(SymlinkIssueKind.CIRCULAR, link, canonical)

    if not canonical.is_dir() or _is_within(canonical, root):
        return None

    size = directory_size(canonical, limit=size_threshold * 2)
    if size > size_threshold:
        return SymlinkIssue(SymlinkIssueKind.LARGE_DIRECTORY, link, canonical, size=size)
    return SymlinkIssue(SymlinkIssueKind.EXTERNAL, link, canonical)


def directory_size(path: Path, *, limit: int, max_depth: int = MAX_SCAN_DEPTH) -> int:
    """Sum regular-file sizes below ``path`` without following links.

    Stops as soon as the running total passes ``limit``; the returned value never
    exceeds ``limit``.
    """

    total = 0
    pending: list[tuple[Path, int]] = [(path, 0)]
    while pending:
        current, depth = pending.pop()
        if depth > max_depth:
            continue
        try:
            with os.scandir(current) as iterator:
                for entry in iterator:
                    if entry.is_dir(follow_symlinks=False):
                        pending.append((Path(entry.path), depth + 1))
                    elif entry.is_file(follow_symlinks=False):
                        total += entry.stat(follow_symlinks=False).st_size
                        if total > limit:
                            return limit
        except OSError as exc:
            logger.warning("Could not measure %s: %s", current, exc)
    return total


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents
