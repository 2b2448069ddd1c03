"""Path normalization and well-known locations."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

from .errors import InvalidPathError


def normalize(raw: str) -> str:
    """Return the canonical textual form of a home-relative path.

    A single leading ``./`` and any trailing ``/`` are stripped. The filesystem
    is never consulted, so symlinks are not resolved.
    """

    if not raw:
        raise InvalidPathError("Path must not be empty")
    if "\0" in raw:
        raise InvalidPathError(f"Path {raw!r} contains a NUL byte")

    text = raw[2:] if raw.startswith("./") else raw
    text = text.rstrip("/")
    if not text:
        raise InvalidPathError(f"Path {raw!r} is empty after normalization")
    if text.startswith("/"):
        raise InvalidPathError(f"Path '{raw}' must be relative to the home directory")
    if ".." in PurePosixPath(text).parts:
        raise InvalidPathError(f"Path '{raw}' must not contain '..' segments")
    return text


def with_dot(path: str) -> str:
    return path if path.startswith(".") else f".{path}"


def without_dot(path: str) -> str:
    if path.startswith(".") and len(path) > 1:
        return path[1:]
    return path


def dot_forms(path: str) -> tuple[str, ...]:
    """Return ``path`` as-is, with a leading dot and without one (no duplicates)."""

    forms: list[str] = []
    for candidate in (path, with_dot(path), without_dot(path)):
        if candidate not in forms:
            forms.append(candidate)
    return tuple(forms)


def home_dir() -> Path:
    try:
        return Path.home()
    except RuntimeError:
        return Path("/")


def config_dir() -> Path:
    """Return ``~/.config/dotstate`` regardless of platform."""

    return home_dir() / ".config" / "dotstate"


def expand_path(raw: str | os.PathLike[str]) -> Path:
    """Expand ``~``, environment variables and home-relative paths."""

    text = os.path.expandvars(str(raw))
    if text == "~":
        return home_dir()
    if text.startswith("~/"):
        return home_dir() / text[2:]
    candidate = Path(text)
    if candidate.is_absolute():
        return candidate
    return home_dir() / candidate


def display_path(path: Path) -> str:
    """Format ``path`` with ``~`` for locations under the home directory."""

    try:
        relative = path.relative_to(home_dir())
    except ValueError:
        return str(path)
    if not relative.parts:
        return "~"
    return f"~/{relative.as_posix()}"
