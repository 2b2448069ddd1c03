"""Safe rewrites of schema-versioned files.

A file without a ``version`` field is treated as version 0. Before an upgraded
document is written, the current bytes are copied to a sidecar named
``<name>.<ext>.backup-v<old_version>``; the sidecar is deleted only once the
new content has been saved, so a failed save always leaves a recoverable copy.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

from .errors import MigrationError

logger = logging.getLogger(__name__)


def sidecar_path(path: Path, extension: str, old_version: int) -> Path:
    """Return the backup location used while migrating ``path``."""

    suffix = f".{extension}"
    stem = path.name[: -len(suffix)] if path.name.endswith(suffix) and path.name != suffix else path.name
    return path.with_name(f"{stem}.{extension}.backup-v{old_version}")


def migrate_file(path: Path, old_version: int, extension: str, save_fn: Callable[[], None]) -> None:
    """Back up ``path``, run ``save_fn`` and drop the backup once it succeeded."""

    backup = sidecar_path(path, extension, old_version)
    try:
        shutil.copy2(path, backup)
    except OSError as exc:
        raise MigrationError(f"Failed to create backup at '{backup}' before migration: {exc}", path=backup) from exc

    try:
        save_fn()
    except Exception as exc:
        logger.error("Migration of %s failed; backup kept at %s", path, backup)
        raise MigrationError(f"Failed to save migrated file to '{path}': {exc}", path=path) from exc

    backup.unlink(missing_ok=True)
    logger.info("Migrated %s from version %d", path, old_version)
