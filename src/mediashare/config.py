"""Application configuration loaded from YAML (or JSON) into pydantic models.

Resolution order for the file: explicit path, ``CONFIG_PATH`` env var,
``./config.yaml``, then ``./config.json``.  ``MEDIA_DIR`` and
``EDITABLE_FOLDERS`` (comma-separated) override the file.

The loaded config is frozen for the process lifetime.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILES = ("config.yaml", "config.json")


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


def _clean_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError("expected a list of strings")
    return [str(v).strip() for v in value if str(v).strip()]


class AuthConfig(_ConfigModel):
    """Admin login settings. No password means auth is off."""

    enabled: bool = False
    password: str | None = None
    admin_access_domains: list[str] = Field(default_factory=list)
    session_secret: str | None = None

    @field_validator("admin_access_domains", mode="before")
    @classmethod
    def _domains(cls, value: Any) -> list[str]:
        return [d.lower() for d in _clean_list(value)]

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.password)


class AppConfig(_ConfigModel):
    """Top-level server configuration."""

    media_dir: Path = Field(default_factory=Path.cwd)
    editable_folders: list[str] = Field(default_factory=list)
    data_dir: Path = Field(default_factory=Path.cwd)
    share_link_domain: str | None = None
    secure_cookies: bool = False
    auth: AuthConfig = Field(default_factory=AuthConfig)

    @field_validator("editable_folders", mode="before")
    @classmethod
    def _folders(cls, value: Any) -> list[str]:
        return [f.replace("\\", "/").strip("/") for f in _clean_list(value)]

    @property
    def auth_enabled(self) -> bool:
        return self.auth.is_active

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def shares_file(self) -> Path:
        return self.data_dir / "shares.json"

    @property
    def stats_file(self) -> Path:
        return self.data_dir / "stats.json"

    @property
    def thumbnail_dir(self) -> Path:
        return self.data_dir / ".thumbnails"


def resolve_config_path(explicit: str | os.PathLike[str] | None = None) -> tuple[Path, bool]:
    """Pick the config file to load.

    Returns:
        (path, explicitly_requested) - a missing default file is not an
        error; a missing explicitly requested file is.
    """
    chosen = explicit or os.environ.get("CONFIG_PATH")
    if chosen:
        return Path(chosen).expanduser().resolve(), True
    for name in DEFAULT_CONFIG_FILES:
        candidate = Path.cwd() / name
        if candidate.is_file():
            return candidate, False
    return Path.cwd() / DEFAULT_CONFIG_FILES[0], False


def load_config(
    path: str | os.PathLike[str] | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> AppConfig:
    """Load, apply environment overrides and validate the configuration.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
        ValueError: If the file is not a mapping or fails validation.
    """
    env = os.environ if environ is None else environ
    config_path, explicit = resolve_config_path(path)

    data: dict[str, Any] = {}
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if explicit:
            raise
        logger.warning("Config file not found at %s, using defaults", config_path)
    else:
        loaded = yaml.safe_load(raw)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        data = loaded
        logger.info("Loaded config from %s", config_path)

    if env.get("MEDIA_DIR"):
        data.pop("mediaDir", None)
        data["media_dir"] = env["MEDIA_DIR"]
    if env.get("EDITABLE_FOLDERS"):
        data.pop("editableFolders", None)
        data["editable_folders"] = env["EDITABLE_FOLDERS"]

    config = AppConfig.model_validate(data)
    if config.auth.enabled and not config.auth.password:
        logger.warning("auth.enabled is set but no password is configured; auth is disabled")
    return config
