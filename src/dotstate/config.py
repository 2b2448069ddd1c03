"""TOML configuration loading for dotstate."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MigrationError
from .filesystem import atomic_write_bytes
from .paths import config_dir, expand_path
from .versioned import migrate_file

DEFAULT_CONFIG_FILENAME = "config.toml"
CONFIG_VERSION = 1


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = os.path.expandvars(str(raw))
    if text.startswith("~"):
        return expand_path(text)
    candidate = Path(text)
    if candidate.is_absolute():
        return candidate
    return (base_dir / candidate).resolve(strict=False)


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    version: int = CONFIG_VERSION
    repo_path: Path = Field(default_factory=lambda: expand_path("~/.dotstate"))
    active_profile: str = ""
    backup_enabled: bool = True

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        values = dict(raw)
        if "repo_path" in values:
            values["repo_path"] = _expand(values["repo_path"], base_dir=base_dir)
        values.setdefault("version", 0)
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc

    def with_overrides(self, *, repo_path: Path | None = None, active_profile: str | None = None) -> "Settings":
        updates: dict[str, Any] = {}
        if repo_path is not None:
            updates["repo_path"] = _expand(repo_path, base_dir=Path.cwd())
        if active_profile is not None:
            updates["active_profile"] = active_profile
        return self.model_copy(update=updates)

    def to_toml(self) -> str:
        return tomli_w.dumps(
            {
                "version": self.version,
                "repo_path": str(self.repo_path),
                "active_profile": self.active_profile,
                "backup_enabled": self.backup_enabled,
            }
        )


def default_config_path() -> Path:
    return config_dir() / DEFAULT_CONFIG_FILENAME


def load_config(path: Path | None = None) -> Settings:
    """Load and validate the configuration file.

    Args:
        path: Optional path to the TOML file. Defaults to
            ``~/.config/dotstate/config.toml``; a missing default file yields the
            built-in settings.
    """

    explicit = path is not None
    config_path = Path(path) if explicit else default_config_path()
    if config_path.is_dir():
        config_path = config_path / DEFAULT_CONFIG_FILENAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Configuration file '{config_path}' does not exist")
        return Settings()

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration '{config_path}': {exc}") from exc

    settings = Settings.from_raw(data, base_dir=config_path.parent)
    if settings.version > CONFIG_VERSION:
        raise ConfigError(
            f"Configuration '{config_path}' has version {settings.version}; "
            f"this dotstate understands up to {CONFIG_VERSION}"
        )
    if settings.version < CONFIG_VERSION:
        old_version = settings.version
        settings = settings.model_copy(update={"version": CONFIG_VERSION})
        try:
            migrate_file(config_path, old_version, "toml", lambda: save_config(settings, config_path))
        except MigrationError as exc:
            raise ConfigError(str(exc)) from exc

    return settings


def save_config(settings: Settings, path: Path | None = None) -> Path:
    config_path = Path(path) if path is not None else default_config_path()
    if config_path.is_dir():
        config_path = config_path / DEFAULT_CONFIG_FILENAME
    atomic_write_bytes(config_path, settings.to_toml().encode("utf-8"))
    return config_path
