"""Profile manifest persistence for dotstate."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import tomli_w

from .errors import InvalidPathError, ManifestError, ProfileNameError, ProfileNotFoundError, StorageError
from .filesystem import atomic_write_bytes
from .membership import MembershipIndex
from .models import ManifestState
from .paths import normalize
from .profiles import COMMON_NAME, is_safe_profile_name, validate_profile_name
from .versioned import migrate_file

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = ".dotstate-profiles.toml"
CURRENT_VERSION = 1

_PROFILE_KEYS = ("name", "description", "synced_files")
_MANIFEST_KEYS = ("version", "profiles", COMMON_NAME)


def _parse_synced_files(raw: Any, owner: str) -> list[str]:
    """Validate a ``synced_files`` array from disk and return its normalized entries."""

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ManifestError(f"'synced_files' of {owner} must be an array of strings, got {raw!r}")

    paths: list[str] = []
    for entry in raw:
        if not isinstance(entry, str):
            raise ManifestError(f"'synced_files' of {owner} contains a non-string entry {entry!r}")
        try:
            paths.append(normalize(entry))
        except InvalidPathError as exc:
            raise ManifestError(f"Invalid synced file in {owner}: {exc}") from exc
    return paths


@dataclass
class Profile:
    """A named group of managed paths. ``extra`` keeps keys this version does not know."""

    name: str
    description: str | None = None
    synced_files: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Profile":
        if not isinstance(raw, dict):
            raise ManifestError(f"Profile entry must be a table, got {raw!r}")
        try:
            name = raw["name"]
        except KeyError as exc:
            raise ManifestError("Profile entry is missing a 'name'") from exc
        if not isinstance(name, str):
            raise ManifestError(f"Profile name must be a string, got {name!r}")

        return cls(
            name=name,
            description=raw.get("description"),
            synced_files=_parse_synced_files(raw.get("synced_files"), f"profile '{name}'"),
            extra={key: value for key, value in raw.items() if key not in _PROFILE_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            payload["description"] = self.description
        payload["synced_files"] = list(self.synced_files)
        payload.update(self.extra)
        return payload


class ProfileManifest:
    """Registry of profiles stored at ``<store>/.dotstate-profiles.toml``.

    Besides the profiles, the ``[common]`` table lists paths shared by every
    profile; their store copies live in ``<store>/common``.
    """

    def __init__(
        self,
        profiles: Iterable[Profile] | None = None,
        *,
        version: int = CURRENT_VERSION,
        common_files: Iterable[str] = (),
        common_extra: dict[str, Any] | None = None,
        extra: dict[str, Any] | None = None,
        state: ManifestState = ManifestState.ABSENT,
    ) -> None:
        self.profiles: list[Profile] = list(profiles or [])
        self.version = version
        self.common_files: list[str] = list(common_files)
        self.common_extra: dict[str, Any] = dict(common_extra or {})
        self.extra: dict[str, Any] = dict(extra or {})
        self.state = state

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProfileManifest):
            return NotImplemented
        return (self.version, self.profiles, self.common_files, self.common_extra, self.extra) == (
            other.version,
            other.profiles,
            other.common_files,
            other.common_extra,
            other.extra,
        )

    def __repr__(self) -> str:
        return f"ProfileManifest(version={self.version}, profiles={self.profile_names()!r}, state={self.state.value})"

    @staticmethod
    def manifest_path(store: Path) -> Path:
        return store / MANIFEST_FILENAME

    @classmethod
    def load(cls, store: Path) -> "ProfileManifest":
        """Parse the manifest in ``store``; an absent file yields an empty manifest."""

        path = cls.manifest_path(store)
        if not path.exists():
            return cls()

        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestError(f"Failed to parse profile manifest '{path}': {exc}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read profile manifest '{path}': {exc}", path=path) from exc

        manifest = cls.from_dict(data)
        manifest.state = ManifestState.LOADED

        if manifest.version > CURRENT_VERSION:
            raise ManifestError(
                f"Profile manifest '{path}' has version {manifest.version}, "
                f"but this dotstate only understands up to {CURRENT_VERSION}"
            )
        if manifest.version < CURRENT_VERSION:
            old_version = manifest.version
            manifest.version = CURRENT_VERSION
            migrate_file(path, old_version, "toml", lambda: manifest.save(store))
            manifest.state = ManifestState.LOADED

        return manifest

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProfileManifest":
        version = data.get("version", 0)
        if not isinstance(version, int) or version < 0:
            raise ManifestError(f"Invalid manifest version {version!r}")

        raw_profiles = data.get("profiles", [])
        if not isinstance(raw_profiles, list):
            raise ManifestError("'profiles' must be an array of tables")

        common = data.get(COMMON_NAME, {})
        if not isinstance(common, dict):
            raise ManifestError(f"'{COMMON_NAME}' must be a table")

        return cls(
            [Profile.from_dict(raw) for raw in raw_profiles],
            version=version,
            common_files=_parse_synced_files(common.get("synced_files"), "the common section"),
            common_extra={key: value for key, value in common.items() if key != "synced_files"},
            extra={key: value for key, value in data.items() if key not in _MANIFEST_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"version": self.version}
        payload.update(self.extra)
        if self.common_files or self.common_extra:
            payload[COMMON_NAME] = {"synced_files": list(self.common_files), **self.common_extra}
        payload["profiles"] = [profile.to_dict() for profile in self.profiles]
        return payload

    @classmethod
    def load_or_backfill(cls, store: Path, *, include_hidden_only: bool = True) -> "ProfileManifest":
        """Load the manifest, synthesizing and saving one from store folders when it is absent."""

        if cls.manifest_path(store).exists():
            return cls.load(store)

        manifest = cls.backfill_from_store(store, include_hidden_only=include_hidden_only)
        if manifest.profiles or manifest.common_files:
            manifest.save(store)
            manifest.state = ManifestState.BACKFILLED
            logger.info("Backfilled profile manifest with %s", ", ".join(manifest.profile_names()))
        return manifest

    @classmethod
    def backfill_from_store(cls, store: Path, *, include_hidden_only: bool = True) -> "ProfileManifest":
        """Build a manifest with one profile per non-empty, validly named store folder.

        A ``common`` folder fills the common section with the files below it
        instead of becoming a profile. ``include_hidden_only`` decides whether a
        folder holding nothing but dot-entries counts as a profile. Nothing is
        written; callers save the result when they mutate it.
        """

        manifest = cls()
        if not store.is_dir():
            return manifest

        for child in sorted(store.iterdir()):
            if not child.is_dir() or child.is_symlink():
                continue
            if child.name != COMMON_NAME and not is_safe_profile_name(child.name):
                logger.debug("Skipping store folder %s during backfill", child.name)
                continue

            try:
                entries = [entry.name for entry in child.iterdir()]
            except OSError as exc:
                logger.warning("Could not read store folder %s during backfill: %s", child, exc)
                continue
            if not entries:
                continue

            if child.name == COMMON_NAME:
                manifest.common_files = _files_below(child)
                continue
            if not include_hidden_only and all(name.startswith(".") for name in entries):
                logger.debug("Skipping %s: it only holds hidden entries", child.name)
                continue

            try:
                manifest.add_profile(child.name)
            except ProfileNameError as exc:
                logger.warning("Skipping store folder %s during backfill: %s", child.name, exc)

        manifest.state = ManifestState.BACKFILLED
        return manifest

    def save(self, store: Path) -> None:
        path = self.manifest_path(store)
        payload = tomli_w.dumps(self.to_dict()).encode("utf-8")
        try:
            atomic_write_bytes(path, payload)
        except OSError as exc:
            raise StorageError(f"Failed to write profile manifest '{path}': {exc}", path=path) from exc
        self.state = ManifestState.SAVED

    # ------------------------------------------------------------------
    # Profile operations

    def get_profile(self, name: str) -> Profile | None:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def require_profile(self, name: str) -> Profile:
        profile = self.get_profile(name)
        if profile is None:
            raise ProfileNotFoundError(f"Profile '{name}' not found in manifest")
        return profile

    def has_profile(self, name: str) -> bool:
        return self.get_profile(name) is not None

    def profile_names(self) -> list[str]:
        return [profile.name for profile in self.profiles]

    def add_profile(self, name: str, description: str | None = None) -> Profile:
        existing = self.get_profile(name)
        if existing is not None:
            return existing

        validate_profile_name(name, self.profile_names())
        profile = Profile(name=name, description=description)
        self.profiles.append(profile)
        self._touch()
        return profile

    def update_synced_files(self, name: str, synced_files: Iterable[str]) -> None:
        profile = self.require_profile(name)
        profile.synced_files = sorted({normalize(path) for path in synced_files})
        self._touch()

    def remove_profile(self, name: str) -> Profile:
        profile = self.require_profile(name)
        self.profiles.remove(profile)
        self._touch()
        return profile

    def rename_profile(self, old_name: str, new_name: str) -> None:
        profile = self.require_profile(old_name)
        if old_name == new_name:
            return
        others = [existing for existing in self.profile_names() if existing != old_name]
        validate_profile_name(new_name, others)
        profile.name = new_name
        self._touch()

    def managed_index(self, name: str) -> MembershipIndex:
        """Paths of profile ``name`` together with the common paths."""

        return MembershipIndex([*self.require_profile(name).synced_files, *self.common_files])

    # ------------------------------------------------------------------
    # Common section

    def is_common_file(self, path: str) -> bool:
        return normalize(path) in self.common_files

    def update_common_files(self, synced_files: Iterable[str]) -> None:
        self.common_files = sorted({normalize(path) for path in synced_files})
        self._touch()

    def move_to_common(self, name: str, path: str) -> None:
        """Move ``path`` from profile ``name`` into the common section."""

        profile = self.require_profile(name)
        normalized = normalize(path)
        if normalized not in profile.synced_files:
            raise ManifestError(f"'{normalized}' is not synced by profile '{name}'")
        profile.synced_files.remove(normalized)
        self.update_common_files([*self.common_files, normalized])

    def move_from_common(self, name: str, path: str) -> None:
        """Move ``path`` from the common section into profile ``name``."""

        profile = self.require_profile(name)
        normalized = normalize(path)
        if normalized not in self.common_files:
            raise ManifestError(f"'{normalized}' is not in the common section")
        self.update_common_files(entry for entry in self.common_files if entry != normalized)
        self.update_synced_files(name, [*profile.synced_files, normalized])

    def _touch(self) -> None:
        self.state = ManifestState.DIRTY


def _files_below(folder: Path) -> list[str]:
    """Relative POSIX paths of every non-directory entry below ``folder``."""

    return sorted(
        entry.relative_to(folder).as_posix()
        for entry in folder.rglob("*")
        if entry.is_symlink() or not entry.is_dir()
    )
