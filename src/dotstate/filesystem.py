"""Filesystem helpers for dotstate."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from .models import EntryType


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def detect_entry_type(path: Path) -> EntryType:
    """Determine the ``EntryType`` for ``path``."""

    if path.is_symlink():
        return EntryType.SYMLINK
    if path.is_dir():
        return EntryType.DIRECTORY
    return EntryType.FILE


def copy_entry(source: Path, destination: Path) -> EntryType:
    """Copy ``source`` into ``destination`` preserving metadata and links."""

    entry_type = detect_entry_type(source)
    ensure_parent(destination)
    remove_path(destination)

    if entry_type == EntryType.SYMLINK:
        destination.symlink_to(os.readlink(source))
    elif entry_type == EntryType.DIRECTORY:
        shutil.copytree(source, destination, symlinks=True, copy_function=shutil.copy2)
    else:
        shutil.copy2(source, destination)

    return entry_type


def copy_into_store(source: Path, destination: Path) -> EntryType:
    """Copy ``source`` into the store at ``destination``.

    Links whose target stays inside ``source`` are recreated as links. Links
    leaving the tree are dereferenced so the store holds real content; the
    pre-flight scan has already refused links to outside directories.
    """

    source = source.resolve() if source.is_symlink() else source
    if source.resolve() == destination.resolve():
        raise shutil.SameFileError(f"'{source}' and '{destination}' are the same file")
    ensure_parent(destination)
    remove_path(destination)

    if not source.is_dir():
        shutil.copy2(source, destination)
        return EntryType.FILE

    root = source.resolve()
    _copy_tree(source, destination, root)
    return EntryType.DIRECTORY


def _copy_tree(source: Path, destination: Path, root: Path) -> None:
    destination.mkdir()
    for child in sorted(source.iterdir()):
        target = destination / child.name
        if child.is_symlink():
            resolved = child.resolve()
            if resolved == root or root in resolved.parents:
                target.symlink_to(os.readlink(child))
            elif resolved.is_dir():
                shutil.copytree(resolved, target, symlinks=True, copy_function=shutil.copy2)
            else:
                shutil.copy2(resolved, target)
        elif child.is_dir():
            _copy_tree(child, target, root)
        else:
            shutil.copy2(child, target)
    shutil.copystat(source, destination)


def ensure_symlink(source: Path, target: Path) -> bool:
    """Ensure ``source`` is a symlink to ``target``.

    Returns ``True`` if a change was made.
    """

    if source.exists() or source.is_symlink():
        if source.is_symlink() and symlink_points_to(source, target):
            return False
        remove_path(source)

    ensure_parent(source)
    try:
        relative_target = os.path.relpath(target, start=source.parent)
        source.symlink_to(relative_target)
    except ValueError:
        source.symlink_to(target)
    return True


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` symlink resolves to ``target``."""

    if not source.is_symlink():
        return False
    current = Path(os.readlink(source))
    current_resolved = (source.parent / current).resolve(strict=False)
    target_resolved = target.resolve(strict=False)
    return current_resolved == target_resolved


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not path.exists() and not path.is_symlink():
        return
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    """Replace ``path`` with ``payload`` so readers never see a partial file."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.dotstate-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(temp_path, path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
