"""Stateless safety checks on a single candidate path."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .paths import home_dir

logger = logging.getLogger(__name__)

NESTED_GIT_MAX_DEPTH = 10


def _absolute(path: Path) -> Path:
    return Path(os.path.abspath(path))


def find_git_root(path: Path) -> Path | None:
    """Return the closest directory at or above ``path`` holding a ``.git`` entry.

    ``.git`` may be a directory or a file (submodules, worktrees). For a file the
    walk starts at its parent.
    """

    path = _absolute(path)
    current = path if path.is_dir() else path.parent
    while True:
        if os.path.lexists(current / ".git"):
            return current
        if current.parent == current:
            return None
        current = current.parent


def find_nested_git_repo(directory: Path, max_depth: int = NESTED_GIT_MAX_DEPTH) -> Path | None:
    """Return the first sub-directory of ``directory`` that is a git repository.

    Symlinked directories are not followed. Unreadable sub-trees are logged and
    skipped.
    """

    def _search(current: Path, depth: int) -> Path | None:
        if depth > max_depth:
            logger.debug("Nested git search stopped at depth %d in %s", depth, current)
            return None
        try:
            with os.scandir(current) as entries:
                children = sorted(
                    (Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=False)),
                    key=lambda child: child.name,
                )
        except OSError as exc:
            logger.warning("Could not read %s while looking for nested repositories: %s", current, exc)
            return None

        for child in children:
            if child.name == ".git":
                continue
            if os.path.lexists(child / ".git"):
                return child
            found = _search(child, depth + 1)
            if found is not None:
                return found
        return None

    return _search(_absolute(directory), 1)


def is_safe_to_add(path: Path, store_path: Path, *, home: Path | None = None) -> tuple[bool, str | None]:
    """Return ``(safe, reason)`` for adding ``path`` to the store at ``store_path``."""

    path = _absolute(path)
    store = _absolute(store_path)
    home = _absolute(home if home is not None else home_dir())

    if path.parent == path:
        return False, "Cannot add a filesystem root"
    if path == store:
        return False, "Cannot add the storage repository folder"
    if path in store.parents:
        return False, "Cannot add a parent folder of the storage repository"
    if path == home:
        return False, "Cannot add the home folder"
    if path in home.parents:
        return False, "Cannot add a parent folder of the home directory"

    git_root = find_git_root(path)
    if git_root is not None:
        return False, (
            f"Cannot sync '{path}': it belongs to the git repository at '{git_root}'. "
            "A nested git repository cannot be stored inside the dotfiles repository."
        )

    return True, None
