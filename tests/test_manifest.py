from __future__ import annotations

import tomllib
from pathlib import Path
from textwrap import dedent

import pytest

from dotstate.errors import ManifestError, ProfileNameError, ProfileNotFoundError
from dotstate.manifest import CURRENT_VERSION, MANIFEST_FILENAME, Profile, ProfileManifest
from dotstate.models import ManifestState


@pytest.fixture
def store(store: Path) -> Path:
    store.mkdir()
    return store


def _write_manifest(store: Path, body: str) -> Path:
    path = store / MANIFEST_FILENAME
    path.write_text(dedent(body))
    return path


def test_load_absent_manifest_is_empty(store: Path) -> None:
    manifest = ProfileManifest.load(store)

    assert manifest.profiles == []
    assert manifest.version == CURRENT_VERSION
    assert manifest.state is ManifestState.ABSENT


def test_round_trip(store: Path) -> None:
    manifest = ProfileManifest()
    manifest.add_profile("Work", "Office laptop")
    manifest.add_profile("Personal")
    manifest.update_synced_files("Work", [".zshrc", ".config/nvim/", ".gitconfig"])
    manifest.save(store)

    loaded = ProfileManifest.load(store)

    assert loaded == manifest
    assert loaded.state is ManifestState.LOADED
    assert loaded.require_profile("Work").synced_files == [".config/nvim", ".gitconfig", ".zshrc"]
    assert loaded.require_profile("Personal").description is None


def test_unknown_keys_survive_rewrite(store: Path) -> None:
    path = _write_manifest(
        store,
        """
        version = 1
        generator = "other-tool"

        [common]
        synced_files = [".editorconfig"]

        [[profiles]]
        name = "Work"
        synced_files = [".zshrc"]
        packages = [{ name = "ripgrep", manager = "brew" }]
        """,
    )

    manifest = ProfileManifest.load(store)
    manifest.update_synced_files("Work", [".zshrc", ".tmux.conf"])
    manifest.save(store)

    with path.open("rb") as handle:
        data = tomllib.load(handle)
    assert data["generator"] == "other-tool"
    assert data["common"] == {"synced_files": [".editorconfig"]}
    assert data["profiles"][0]["packages"] == [{"name": "ripgrep", "manager": "brew"}]
    assert data["profiles"][0]["synced_files"] == [".tmux.conf", ".zshrc"]


def test_version_less_manifest_is_migrated(store: Path) -> None:
    path = _write_manifest(
        store,
        """
        [[profiles]]
        name = "Work"
        synced_files = [".zshrc"]
        """,
    )

    manifest = ProfileManifest.load(store)

    assert manifest.version == CURRENT_VERSION
    with path.open("rb") as handle:
        assert tomllib.load(handle)["version"] == CURRENT_VERSION
    assert not (store / f"{MANIFEST_FILENAME}.backup-v0").exists()
    assert manifest.profile_names() == ["Work"]


def test_newer_manifest_version_is_rejected(store: Path) -> None:
    _write_manifest(store, "version = 99\n")

    with pytest.raises(ManifestError, match="version 99"):
        ProfileManifest.load(store)


def test_unparsable_manifest_is_rejected(store: Path) -> None:
    _write_manifest(store, "version = \n")

    with pytest.raises(ManifestError, match="Failed to parse"):
        ProfileManifest.load(store)


def test_profile_without_name_is_rejected() -> None:
    with pytest.raises(ManifestError, match="missing a 'name'"):
        ProfileManifest.from_dict({"version": 1, "profiles": [{"synced_files": []}]})


def test_backfill_from_store_folders(store: Path) -> None:
    for name in ("Work", "Personal", ".git", "target"):
        (store / name).mkdir()
        (store / name / "marker").write_text("x\n")
    (store / "empty").mkdir()
    (store / "README.md").write_text("# dotfiles\n")

    manifest = ProfileManifest.load_or_backfill(store)

    assert sorted(manifest.profile_names()) == ["Personal", "Work"]
    assert manifest.state is ManifestState.BACKFILLED
    assert (store / MANIFEST_FILENAME).exists()


def test_backfill_hidden_only_folders(store: Path) -> None:
    (store / "Laptop").mkdir()
    (store / "Laptop" / ".zshrc").write_text("x\n")

    assert ProfileManifest.backfill_from_store(store).profile_names() == ["Laptop"]
    assert ProfileManifest.backfill_from_store(store, include_hidden_only=False).profile_names() == []


def test_backfill_without_profiles_does_not_write(store: Path) -> None:
    manifest = ProfileManifest.load_or_backfill(store)

    assert manifest.profiles == []
    assert not (store / MANIFEST_FILENAME).exists()


def test_backfill_of_missing_store(tmp_path: Path) -> None:
    assert ProfileManifest.backfill_from_store(tmp_path / "nowhere").profiles == []


def test_profile_operations() -> None:
    manifest = ProfileManifest()

    work = manifest.add_profile("Work")
    assert manifest.add_profile("Work") is work
    assert manifest.state is ManifestState.DIRTY

    with pytest.raises(ProfileNameError, match="already exists"):
        manifest.add_profile("work")
    with pytest.raises(ProfileNameError):
        manifest.add_profile("temp")

    manifest.rename_profile("Work", "Office")
    assert manifest.profile_names() == ["Office"]
    assert manifest.managed_index("Office").contains_exact(".zshrc") is False

    removed = manifest.remove_profile("Office")
    assert removed == Profile(name="Office")
    assert not manifest.has_profile("Office")


def test_missing_profile_raises_not_found() -> None:
    manifest = ProfileManifest()

    assert manifest.get_profile("Ghost") is None
    with pytest.raises(ProfileNotFoundError):
        manifest.require_profile("Ghost")
    with pytest.raises(ProfileNotFoundError):
        manifest.update_synced_files("Ghost", [".zshrc"])
    with pytest.raises(ProfileNotFoundError):
        manifest.rename_profile("Ghost", "Other")
    with pytest.raises(ProfileNotFoundError):
        manifest.remove_profile("Ghost")


def test_backfill_routes_common_folder(store: Path) -> None:
    (store / "Work").mkdir()
    (store / "Work" / ".zshrc").write_text("x\n")
    (store / "common" / ".config" / "git").mkdir(parents=True)
    (store / "common" / ".config" / "git" / "ignore").write_text("*.swp\n")
    (store / "common" / ".editorconfig").write_text("root = true\n")

    manifest = ProfileManifest.backfill_from_store(store)

    assert manifest.profile_names() == ["Work"]
    assert manifest.common_files == [".config/git/ignore", ".editorconfig"]
    assert not (store / MANIFEST_FILENAME).exists()
    assert manifest.managed_index("Work").contains_exact(".editorconfig")


def test_common_section_round_trip(store: Path) -> None:
    manifest = ProfileManifest()
    manifest.add_profile("Work")
    manifest.update_synced_files("Work", [".zshrc", ".gitconfig"])
    manifest.move_to_common("Work", ".gitconfig")
    manifest.save(store)

    loaded = ProfileManifest.load(store)

    assert loaded.common_files == [".gitconfig"]
    assert loaded.require_profile("Work").synced_files == [".zshrc"]
    assert loaded.is_common_file("./.gitconfig")

    loaded.move_from_common("Work", ".gitconfig")
    assert loaded.common_files == []
    assert loaded.require_profile("Work").synced_files == [".gitconfig", ".zshrc"]
    with pytest.raises(ManifestError, match="not in the common section"):
        loaded.move_from_common("Work", ".gitconfig")
    with pytest.raises(ManifestError, match="not synced by profile"):
        loaded.move_to_common("Work", ".bashrc")


@pytest.mark.parametrize(
    ("synced_files", "message"),
    [
        ('["/etc/hosts"]', "must be relative"),
        ('["../outside"]', "'..'"),
        ('"abc"', "must be an array of strings"),
        ("[1, 2]", "non-string entry"),
    ],
)
def test_invalid_synced_files_fail_at_load(store: Path, synced_files: str, message: str) -> None:
    _write_manifest(store, f'version = 1\n\n[[profiles]]\nname = "Work"\nsynced_files = {synced_files}\n')

    with pytest.raises(ManifestError, match=message):
        ProfileManifest.load(store)


def test_invalid_common_section_fails_at_load(store: Path) -> None:
    _write_manifest(store, 'version = 1\ncommon = "shared"\n')

    with pytest.raises(ManifestError, match="must be a table"):
        ProfileManifest.load(store)
