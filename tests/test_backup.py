from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import pytest

from dotstate.backup import BACKUP_DIRNAME, BackupManager
from dotstate.errors import BackupError


def test_open_session_uses_timestamp(fake_home: Path) -> None:
    manager = BackupManager()

    session = manager.open_session(datetime(2024, 3, 9, 14, 5, 7))

    assert session.path == fake_home / BACKUP_DIRNAME / "2024-03-09T14:05:07"
    assert session.path.is_dir()


def test_sessions_in_the_same_second_do_not_merge(fake_home: Path) -> None:
    manager = BackupManager(fake_home)
    moment = datetime(2024, 3, 9, 14, 5, 7)

    first = manager.open_session(moment)
    second = manager.open_session(moment)

    assert first.path != second.path
    assert second.path.name == "2024-03-09T14:05:07-2"
    assert manager.sessions() == [first.path, second.path]


def test_backup_file_keeps_relative_layout(fake_home: Path) -> None:
    source = fake_home / ".config" / "fish" / "config.fish"
    source.parent.mkdir(parents=True)
    source.write_text("set -g fish_greeting\n")
    session = BackupManager(fake_home).open_session()

    copy = session.backup(source, ".config/fish/config.fish")

    assert copy == session.path / ".config" / "fish" / "config.fish"
    assert copy.read_text() == "set -g fish_greeting\n"
    assert source.exists()


def test_backup_directory_preserves_symlinks(fake_home: Path) -> None:
    source = fake_home / ".nvim"
    source.mkdir()
    (source / "init.lua").write_text("-- nvim\n")
    (source / "alias.lua").symlink_to("init.lua")
    session = BackupManager(fake_home).open_session()

    copy = session.backup(source, ".nvim")

    assert (copy / "init.lua").read_text() == "-- nvim\n"
    assert (copy / "alias.lua").is_symlink()
    assert os.readlink(copy / "alias.lua") == "init.lua"


def test_backup_missing_source_raises(fake_home: Path) -> None:
    session = BackupManager(fake_home).open_session()

    with pytest.raises(BackupError) as excinfo:
        session.backup(fake_home / "missing", "missing")

    assert excinfo.value.path == fake_home / "missing"


def test_sessions_empty_without_backup_root(fake_home: Path) -> None:
    assert BackupManager(fake_home).sessions() == []


def test_backup_symlink_keeps_link(fake_home: Path) -> None:
    session = BackupManager(fake_home).open_session()
    link = fake_home / ".zshrc"
    link.symlink_to("dotfiles/Work/.zshrc")

    copy = session.backup(link, ".zshrc")

    assert copy.is_symlink()
    assert os.readlink(copy) == "dotfiles/Work/.zshrc"
