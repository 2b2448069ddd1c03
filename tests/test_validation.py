from __future__ import annotations

from pathlib import Path

import pytest

from dotstate.membership import MembershipIndex
from dotstate.models import SymlinkIssueKind
from dotstate.validation import validate_before_sync, validate_symlink_creation


def _validate(home: Path, relative: str, managed: list[str], store: Path):
    return validate_before_sync(relative, home / relative, MembershipIndex(managed), store)


def test_file_inside_managed_directory(fake_home: Path, store: Path) -> None:
    (fake_home / ".nvim").mkdir()
    (fake_home / ".nvim" / "init.lua").write_text("-- nvim\n")

    verdict = _validate(fake_home, ".nvim/init.lua", [".nvim"], store)

    assert not verdict.safe
    assert "inside a" in (verdict.reason or "")


def test_directory_containing_managed_file(fake_home: Path, store: Path) -> None:
    (fake_home / ".nvim").mkdir()
    (fake_home / ".nvim" / "init.lua").write_text("-- nvim\n")

    verdict = _validate(fake_home, ".nvim", [".nvim/init.lua"], store)

    assert not verdict.safe
    assert "contains" in (verdict.reason or "")


def test_already_synced(fake_home: Path, store: Path) -> None:
    (fake_home / ".zshrc").write_text("export EDITOR=nvim\n")

    verdict = validate_before_sync("./.zshrc", fake_home / ".zshrc", [".zshrc"], store)

    assert not verdict.safe
    assert verdict.reason == "File or directory is already synced: .zshrc"


def test_directory_that_is_a_git_repository(fake_home: Path, store: Path) -> None:
    (fake_home / ".config" / ".git").mkdir(parents=True)

    verdict = _validate(fake_home, ".config", [], store)

    assert not verdict.safe
    assert "nested git repository" in (verdict.reason or "")


def test_directory_containing_nested_repository(fake_home: Path, store: Path) -> None:
    (fake_home / ".config" / "nvim" / "pack" / ".git").mkdir(parents=True)

    verdict = _validate(fake_home, ".config", [], store)

    assert not verdict.safe
    assert "nested git repository" in (verdict.reason or "")
    assert "pack" in (verdict.reason or "")


def test_directory_with_broken_symlink(fake_home: Path, store: Path) -> None:
    project = fake_home / "project"
    project.mkdir()
    (project / "link").symlink_to("/nonexistent")

    verdict = _validate(fake_home, "project", [], store)

    assert not verdict.safe
    assert [issue.kind for issue in verdict.issues] == [SymlinkIssueKind.BROKEN]
    assert "unsafe symlinks" in (verdict.reason or "")


def test_directory_with_circular_symlink(fake_home: Path, store: Path) -> None:
    project = fake_home / "project"
    project.mkdir()
    (project / "link").symlink_to("..")

    verdict = _validate(fake_home, "project", [], store)

    assert not verdict.safe
    assert [issue.kind for issue in verdict.issues] == [SymlinkIssueKind.CIRCULAR]


def test_directory_linking_to_large_tree(fake_home: Path, tmp_path: Path, store: Path) -> None:
    unrelated = tmp_path / "unrelated"
    unrelated.mkdir()
    with (unrelated / "blob.bin").open("wb") as handle:
        handle.truncate(200 * 1024 * 1024)
    project = fake_home / "project"
    project.mkdir()
    (project / "link").symlink_to(unrelated)

    verdict = _validate(fake_home, "project", [], store)

    assert not verdict.safe
    assert len(verdict.issues) == 1
    assert verdict.issues[0].kind is SymlinkIssueKind.LARGE_DIRECTORY
    assert (verdict.issues[0].size or 0) > 100 * 1024 * 1024


def test_home_folder_is_refused(fake_home: Path, store: Path) -> None:
    verdict = validate_before_sync(".", fake_home, [], store)

    assert not verdict.safe
    assert verdict.reason == "Cannot add the home folder"


def test_invalid_relative_path_is_refused(fake_home: Path, store: Path) -> None:
    verdict = validate_before_sync("../escape", fake_home / ".." / "escape", [], store)

    assert not verdict.safe
    assert "'..'" in (verdict.reason or "")


def test_clean_file_and_directory_are_safe(fake_home: Path, store: Path) -> None:
    (fake_home / ".zshrc").write_text("export EDITOR=nvim\n")
    (fake_home / ".config" / "fish").mkdir(parents=True)
    (fake_home / ".config" / "fish" / "config.fish").write_text("set -g fish_greeting\n")
    (fake_home / ".config" / "fish" / "alias.fish").symlink_to("config.fish")

    assert _validate(fake_home, ".zshrc", [".bashrc"], store).safe
    assert _validate(fake_home, ".config/fish", [".bashrc"], store).safe


def test_symlink_creation_requires_source(tmp_path: Path) -> None:
    verdict = validate_symlink_creation(tmp_path / "missing", tmp_path / "store" / "x", tmp_path / "x")

    assert not verdict.safe
    assert "does not exist" in (verdict.reason or "")


def test_symlink_creation_refuses_self_link(tmp_path: Path) -> None:
    source = tmp_path / "file"
    source.write_text("data\n")

    verdict = validate_symlink_creation(source, tmp_path / "link", tmp_path / "link")

    assert not verdict.safe
    assert "point at itself" in (verdict.reason or "")


def test_symlink_creation_refuses_file_parent(tmp_path: Path) -> None:
    source = tmp_path / "file"
    source.write_text("data\n")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory\n")

    verdict = validate_symlink_creation(source, tmp_path / "store" / "file", blocker / "file")

    assert not verdict.safe
    assert "not a directory" in (verdict.reason or "")


def test_symlink_creation_removes_directories_it_created(tmp_path: Path) -> None:
    source = tmp_path / "file"
    source.write_text("data\n")
    target = tmp_path / "deep" / "er" / "file"

    verdict = validate_symlink_creation(source, tmp_path / "store" / "file", target)

    assert verdict.safe
    assert not (tmp_path / "deep").exists()


def test_symlink_creation_reports_unwritable_parent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "file"
    source.write_text("data\n")

    def deny(*_args, **_kwargs):
        raise PermissionError("read-only")

    monkeypatch.setattr("dotstate.validation.tempfile.mkstemp", deny)

    verdict = validate_symlink_creation(source, tmp_path / "store" / "file", tmp_path / "new" / "file")

    assert not verdict.safe
    assert "Cannot write to target location" in (verdict.reason or "")
    assert not (tmp_path / "new").exists()
