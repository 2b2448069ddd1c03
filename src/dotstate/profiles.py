"""Profile-name rules shared by the manifest, backfill and the CLI."""

from __future__ import annotations

from typing import Iterable

from .errors import ProfileNameError

COMMON_NAME = "common"
RESERVED_NAMES = frozenset({"backup", "temp", ".git", "node_modules", "target", "build", COMMON_NAME})
MAX_NAME_LENGTH = 50


def _valid_char(char: str) -> bool:
    return char.isalnum() or char in "-_"


def validate_profile_name(name: str, existing_profiles: Iterable[str] = ()) -> None:
    """Raise ``ProfileNameError`` unless ``name`` is usable for a new profile.

    The name is never rewritten; use ``sanitize_profile_name`` to repair input.
    """

    if not name:
        raise ProfileNameError("Profile name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ProfileNameError(f"Profile name must be {MAX_NAME_LENGTH} characters or less (got {len(name)})")
    if name.startswith("."):
        raise ProfileNameError("Profile name cannot start with a dot")
    if not all(_valid_char(char) for char in name):
        raise ProfileNameError("Profile name can only contain letters, numbers, hyphens, and underscores")
    if name.lower() in RESERVED_NAMES:
        raise ProfileNameError(f"'{name}' is a reserved name and cannot be used")

    lowered = name.casefold()
    if any(existing.casefold() == lowered for existing in existing_profiles):
        raise ProfileNameError(f"A profile with the name '{name}' already exists")


def is_safe_profile_name(name: str) -> bool:
    """Return ``True`` if ``name`` passes the format rules (uniqueness not checked)."""

    try:
        validate_profile_name(name)
    except ProfileNameError:
        return False
    return True


def sanitize_profile_name(name: str) -> str:
    """Repair user input: whitespace becomes ``-``, other invalid characters ``_``."""

    repaired = []
    for char in name.strip():
        if _valid_char(char):
            repaired.append(char)
        elif char.isspace():
            repaired.append("-")
        else:
            repaired.append("_")
    return "".join(repaired)[:MAX_NAME_LENGTH]
