"""Timestamped backup sessions under ``~/.dotstate-backups``."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import BackupError
from .filesystem import ensure_parent, remove_path
from .paths import home_dir

logger = logging.getLogger(__name__)

BACKUP_DIRNAME = ".dotstate-backups"
SESSION_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass(frozen=True, slots=True)
class BackupSession:
    """One sync operation's backup directory. Never removed automatically."""

    path: Path

    def backup(self, source: Path, relative_name: str) -> Path:
        """Copy ``source`` to ``<session>/<relative_name>`` and return the copy's path.

        A symlink is backed up as a link so the session records where it pointed.
        """

        destination = self.path / relative_name
        try:
            ensure_parent(destination)
            if source.is_symlink():
                remove_path(destination)
                destination.symlink_to(os.readlink(source))
            elif source.is_dir():
                shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
            else:
                shutil.copy2(source, destination)
        except OSError as exc:
            raise BackupError(f"Failed to back up '{source}' to '{destination}': {exc}", path=source) from exc

        logger.info("Backed up %s to %s", source, destination)
        return destination


class BackupManager:
    """Creates backup sessions below ``<home>/.dotstate-backups``."""

    def __init__(self, home: Path | None = None) -> None:
        self.backup_root = (home if home is not None else home_dir()) / BACKUP_DIRNAME

    def open_session(self, now: datetime | None = None) -> BackupSession:
        timestamp = (now or datetime.now()).strftime(SESSION_TIMESTAMP_FORMAT)
        try:
            self.backup_root.mkdir(parents=True, exist_ok=True)
            session_dir = self.backup_root / timestamp
            counter = 1
            while session_dir.exists():
                counter += 1
                session_dir = self.backup_root / f"{timestamp}-{counter}"
            session_dir.mkdir()
        except OSError as exc:
            raise BackupError(
                f"Failed to create backup session in '{self.backup_root}': {exc}", path=self.backup_root
            ) from exc

        logger.debug("Opened backup session %s", session_dir)
        return BackupSession(session_dir)

    def sessions(self) -> list[Path]:
        """Return existing session directories, oldest first."""

        if not self.backup_root.is_dir():
            return []
        return sorted(child for child in self.backup_root.iterdir() if child.is_dir())
