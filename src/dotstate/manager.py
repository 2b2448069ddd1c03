"""High level orchestration for dotstate operations."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .backup import BackupManager, BackupSession
from .config import Settings
from .errors import DotstateError, InvalidPathError, StorageError, SyncError
from .filesystem import copy_entry, copy_into_store, ensure_symlink, remove_path, symlink_points_to
from .manifest import ProfileManifest
from .membership import MembershipIndex
from .models import AddAction, AddResult, RemoveAction, RemoveResult, SwitchResult, ValidationResult
from .paths import home_dir, normalize
from .profiles import COMMON_NAME, validate_profile_name
from .validation import validate_before_sync, validate_symlink_creation

logger = logging.getLogger(__name__)


class DotstateManager:
    """Moves paths between the home directory and the active profile's store folder.

    Every add is validated in full before the first destructive step. After that
    the sequence is backup, copy into store, delete original, link, manifest
    update; a failing step is not rolled back but the backup session keeps the
    original.

    Paths in the manifest's common section live in ``<store>/common`` and are
    linked whichever profile is active.
    """

    def __init__(self, settings: Settings, *, backups: BackupManager | None = None) -> None:
        self.settings = settings
        self.store = settings.repo_path
        self.home = home_dir()
        self.backups = backups or BackupManager(self.home)
        # A missing manifest is synthesized in memory; the first mutation writes it.
        if ProfileManifest.manifest_path(self.store).exists():
            self.manifest = ProfileManifest.load(self.store)
        else:
            self.manifest = ProfileManifest.backfill_from_store(self.store)

    @property
    def profile(self) -> str:
        if not self.settings.active_profile:
            raise DotstateError("No active profile configured. Pass --profile or set 'active_profile' in the config.")
        return self.settings.active_profile

    def managed_paths(self, profile: str | None = None) -> list[str]:
        name = profile or self.profile
        found = self.manifest.get_profile(name)
        return list(found.synced_files) if found else []

    def managed_index(self, profile: str | None = None) -> MembershipIndex:
        """Paths of the profile together with the common paths."""

        return MembershipIndex([*self.managed_paths(profile), *self.manifest.common_files])

    def source_path(self, relative: str) -> Path:
        return self.home / relative

    def managed_path(self, relative: str, profile: str | None = None) -> Path:
        return self.store / (profile or self.profile) / relative

    def common_path(self, relative: str) -> Path:
        return self.store / COMMON_NAME / relative

    # ------------------------------------------------------------------
    # Sync operations

    def check(self, relative_path: str, *, common: bool = False) -> ValidationResult:
        """Run every pre-flight check for ``relative_path`` without changing anything."""

        verdict = validate_before_sync(
            relative_path,
            self.home / relative_path,
            self.managed_index(),
            self.store,
        )
        if not verdict.safe:
            return verdict

        relative = normalize(relative_path)
        source = self.source_path(relative)
        managed = self.common_path(relative) if common else self.managed_path(relative)

        resolved = source.resolve()
        store_root = self.store.resolve()
        if resolved == managed.resolve() or resolved == store_root or store_root in resolved.parents:
            return ValidationResult.refuse(f"'{relative}' already points into the store at '{resolved}'")
        if resolved in store_root.parents:
            return ValidationResult.refuse(f"'{relative}' contains the store folder '{store_root}'")

        return validate_symlink_creation(self._copy_source(source), managed, source)

    def add(self, relative_path: str, *, common: bool = False) -> AddResult:
        """Move a home path into the store and link it back.

        With ``common`` the path joins the section shared by every profile.
        """

        try:
            relative = normalize(relative_path)
        except InvalidPathError as exc:
            return AddResult(
                relative_path,
                AddAction.REFUSED,
                self.home / relative_path,
                self.store / (COMMON_NAME if common else self.profile) / relative_path,
                reason=str(exc),
            )

        index = self.managed_index()
        source = self.source_path(relative)
        managed = self.common_path(relative) if common else self.managed_path(relative)

        if index.contains_exact(relative):
            return AddResult(relative, AddAction.ALREADY_MANAGED, source, self.stored_path(relative))

        verdict = self.check(relative, common=common)
        if not verdict.safe:
            logger.warning("Validation failed for %s: %s", relative, verdict.reason)
            return AddResult(relative, AddAction.REFUSED, source, managed, reason=verdict.reason)

        copy_source = self._copy_source(source)

        session: BackupSession | None = None
        backup_path: Path | None = None
        if self.settings.backup_enabled:
            session = self.backups.open_session()
            backup_path = session.backup(copy_source, relative)

        session_path = session.path if session else None
        logger.info("Adding %s to %s", relative, COMMON_NAME if common else f"profile {self.profile}")
        try:
            copy_into_store(copy_source, managed)
        except OSError as exc:
            raise SyncError(f"Failed to copy '{copy_source}' into the store: {exc}", session_path) from exc

        try:
            remove_path(source)
            ensure_symlink(source, managed)
        except OSError as exc:
            raise SyncError(f"Failed to replace '{source}' with a symlink: {exc}", session_path) from exc

        if common:
            self._record_common({*self.manifest.common_files, relative}, session_path)
        else:
            self._record(self.profile, {*self.managed_paths(), relative}, session_path)
        return AddResult(relative, AddAction.ADDED, source, managed, backup=backup_path)

    def remove(self, relative_path: str) -> RemoveResult:
        """Hand a managed path back to the home directory as a real file.

        Only a home symlink pointing at the stored copy is replaced. When the
        home entry is a regular file or a link somewhere else, it is left alone
        together with the stored copy and the path is just dropped from sync.
        """

        relative = normalize(relative_path)
        index = self.managed_index()
        source = self.source_path(relative)
        common = self.manifest.is_common_file(relative)
        managed = self.stored_path(relative)

        if not index.contains_exact(relative):
            logger.debug("%s is not managed, nothing to remove", relative)
            return RemoveResult(relative, RemoveAction.NOT_MANAGED, source, managed)

        logger.info("Removing %s from %s", relative, COMMON_NAME if common else f"profile {self.profile}")
        action = RemoveAction.RESTORED
        try:
            if source.is_symlink() and not symlink_points_to(source, managed):
                logger.warning("%s points elsewhere; keeping it and the stored copy at %s", source, managed)
                action = RemoveAction.DETACHED
            elif source.is_symlink() or not source.exists():
                source.unlink(missing_ok=True)
                if managed.exists() or managed.is_symlink():
                    copy_entry(managed, source)
                remove_path(managed)
            else:
                logger.warning("%s is no longer a symlink; keeping the stored copy at %s", source, managed)
                action = RemoveAction.DETACHED
        except OSError as exc:
            raise SyncError(f"Failed to restore '{source}' from '{managed}': {exc}") from exc

        if common:
            self._record_common(set(self.manifest.common_files) - {relative}, None)
        else:
            self._record(self.profile, set(self.managed_paths()) - {relative}, None)
        return RemoveResult(relative, action, source, managed)

    def stored_path(self, relative: str) -> Path:
        """Where the store keeps ``relative``: the common folder or the active profile's."""

        if self.manifest.is_common_file(relative):
            return self.common_path(relative)
        return self.managed_path(relative)

    # ------------------------------------------------------------------
    # Profile activation

    def activate_profile(self, name: str | None = None) -> SwitchResult:
        """Link every path of profile ``name`` and the common section into the home directory.

        Links that are already correct are left alone. Anything else occupying a
        home path is backed up before the link replaces it. Paths whose stored
        copy is missing are skipped with a warning.
        """

        target = name or self.profile

        entries = [(relative, self.managed_path(relative, target)) for relative in self.managed_paths(target)]
        entries.extend((relative, self.common_path(relative)) for relative in self.manifest.common_files)

        session: BackupSession | None = None
        linked: list[str] = []
        for relative, managed in entries:
            source = self.source_path(relative)
            if not managed.exists() and not managed.is_symlink():
                logger.warning("Stored copy %s is missing; not linking %s", managed, source)
                continue
            if symlink_points_to(source, managed):
                continue

            try:
                if source.exists() or source.is_symlink():
                    if self.settings.backup_enabled:
                        session = session or self.backups.open_session()
                        session.backup(source, relative)
                    remove_path(source)
                ensure_symlink(source, managed)
            except OSError as exc:
                raise SyncError(
                    f"Failed to link '{source}' to '{managed}': {exc}", session.path if session else None
                ) from exc
            logger.debug("Linked %s -> %s", source, managed)
            linked.append(relative)

        return SwitchResult(
            previous=self.settings.active_profile,
            target=target,
            linked=tuple(linked),
            backup=session.path if session else None,
        )

    def switch_profile(self, target: str) -> SwitchResult:
        """Replace the active profile's home links with those of ``target``.

        Only links that point at the old profile's store folder are removed, so
        files the user replaced by hand stay where they are. Common paths keep
        their links.
        """

        self.manifest.require_profile(target)
        previous = self.settings.active_profile
        if previous == target:
            logger.info("Profile %s is already active", target)
            return SwitchResult(previous=previous, target=target)

        removed: list[str] = []
        if previous and self.manifest.has_profile(previous):
            for relative in self.managed_paths(previous):
                source = self.source_path(relative)
                if not symlink_points_to(source, self.managed_path(relative, previous)):
                    continue
                try:
                    source.unlink()
                except OSError as exc:
                    raise SyncError(f"Failed to remove symlink '{source}': {exc}") from exc
                removed.append(relative)

        activated = self.activate_profile(target)
        self.settings = self.settings.model_copy(update={"active_profile": target})
        logger.info(
            "Switched from %s to %s: removed %d links, created %d",
            previous or "(none)",
            target,
            len(removed),
            len(activated.linked),
        )
        return SwitchResult(
            previous=previous,
            target=target,
            removed=tuple(removed),
            linked=activated.linked,
            backup=activated.backup,
        )

    # ------------------------------------------------------------------
    # Profile lifecycle

    def create_profile(self, name: str, description: str | None = None, *, copy_from: str | None = None) -> None:
        """Register profile ``name``, optionally seeded with a copy of another profile's files."""

        if self.manifest.has_profile(name):
            raise DotstateError(f"Profile '{name}' already exists")
        seed = self.manifest.require_profile(copy_from) if copy_from else None
        self.manifest.add_profile(name, description)

        profile_dir = self.store / name
        synced: list[str] = []
        try:
            profile_dir.mkdir(parents=True, exist_ok=True)
            if seed is not None:
                for relative in seed.synced_files:
                    stored = self.managed_path(relative, seed.name)
                    if not stored.exists() and not stored.is_symlink():
                        logger.warning("Stored copy %s is missing; not copying it to %s", stored, name)
                        continue
                    copy_entry(stored, profile_dir / relative)
                    synced.append(relative)
        except OSError as exc:
            raise StorageError(f"Failed to populate profile folder '{profile_dir}': {exc}", path=profile_dir) from exc

        if synced:
            self.manifest.update_synced_files(name, synced)
        self.manifest.save(self.store)

    def rename_profile(self, old_name: str, new_name: str) -> None:
        """Rename the manifest entry and the store folder together."""

        self.manifest.require_profile(old_name)
        validate_profile_name(new_name, [name for name in self.manifest.profile_names() if name != old_name])

        old_dir = self.store / old_name
        new_dir = self.store / new_name
        if new_dir.exists() and old_name.casefold() != new_name.casefold():
            raise DotstateError(f"Store folder '{new_dir}' already exists")

        try:
            if old_dir.exists():
                old_dir.rename(new_dir)
        except OSError as exc:
            raise StorageError(f"Failed to rename profile folder '{old_dir}': {exc}", path=old_dir) from exc

        self.manifest.rename_profile(old_name, new_name)
        self.manifest.save(self.store)

        if old_name == self.settings.active_profile:
            self._relink(new_name)
            self.settings = self.settings.model_copy(update={"active_profile": new_name})

    def delete_profile(self, name: str) -> None:
        self.manifest.require_profile(name)
        if name == self.settings.active_profile:
            raise DotstateError(f"Cannot delete the active profile '{name}'. Switch to another profile first.")

        profile_dir = self.store / name
        try:
            if profile_dir.exists():
                shutil.rmtree(profile_dir)
        except OSError as exc:
            raise StorageError(f"Failed to remove profile folder '{profile_dir}': {exc}", path=profile_dir) from exc

        self.manifest.remove_profile(name)
        self.manifest.save(self.store)

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _copy_source(source: Path) -> Path:
        return source.resolve() if source.is_symlink() else source

    def _relink(self, profile: str) -> None:
        """Point every home symlink of ``profile`` at its current store folder."""

        for relative in self.managed_paths(profile):
            source = self.source_path(relative)
            if not source.is_symlink():
                continue
            try:
                ensure_symlink(source, self.managed_path(relative, profile))
            except OSError as exc:
                logger.error("Failed to update symlink %s after rename: %s", source, exc)

    def _record(self, profile: str, paths: set[str], session: Path | None) -> None:
        try:
            if not self.manifest.has_profile(profile):
                self.manifest.add_profile(profile)
            self.manifest.update_synced_files(profile, paths)
            self.manifest.save(self.store)
        except DotstateError as exc:
            raise SyncError(f"Failed to update the profile manifest: {exc}", session) from exc

    def _record_common(self, paths: set[str], session: Path | None) -> None:
        try:
            self.manifest.update_common_files(paths)
            self.manifest.save(self.store)
        except DotstateError as exc:
            raise SyncError(f"Failed to update the profile manifest: {exc}", session) from exc
