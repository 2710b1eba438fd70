"""Loads hostexec settings from the user and project config files."""

import logging
import os
from pathlib import Path
from typing import Any

import toml
from pydantic import ValidationError

from hostexec.config.schema import HostexecConfig, get_config_file
from hostexec.errors import ConfigError

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = ".hostexec.toml"
CONFIG_ENV_VAR = "HOSTEXEC_CONFIG"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base; nested tables merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def user_config_path() -> Path:
    """User config file, overridable through $HOSTEXEC_CONFIG."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_config_file()


def find_project_config(start: Path | None = None) -> Path | None:
    """Nearest .hostexec.toml from start (default cwd) up to the home directory."""
    start = start or Path.cwd()
    home = Path.home()
    for directory in [start, *start.parents]:
        candidate = directory / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        if directory == home:
            break
    return None


def _read_table(path: Path) -> dict[str, Any]:
    try:
        return toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(path, str(e)) from e


def _validate(settings: dict[str, Any], origin: object) -> HostexecConfig:
    try:
        return HostexecConfig.model_validate(settings)
    except ValidationError as e:
        raise ConfigError(origin, str(e)) from e


class ConfigManager:
    """Caches the effective configuration for the process.

    Later sources win: built-in defaults, then the user file, then the
    project file.
    """

    _config: HostexecConfig | None = None
    sources: list[Path] = []

    @classmethod
    def get_config(cls) -> HostexecConfig:
        if cls._config is None:
            cls._config = cls.load_config()
        return cls._config

    @classmethod
    def reload(cls) -> HostexecConfig:
        cls._config = None
        return cls.get_config()

    @classmethod
    def load_config(cls) -> HostexecConfig:
        """Read and validate every config file that exists.

        Raises:
            ConfigError: A file is not valid toml or does not match the schema.
        """
        candidates = [user_config_path(), cls._find_project_config()]
        sources = [path for path in candidates if path is not None and path.is_file()]

        settings: dict[str, Any] = {}
        for path in sources:
            logger.debug("Loading config from %s", path)
            table = _read_table(path)
            # Every field has a default, so each file must be valid on its own.
            _validate(table, path)
            settings = deep_merge(settings, table)

        config = _validate(settings, " + ".join(map(str, sources)) or "<defaults>")

        cls.sources = sources
        return config

    @classmethod
    def _find_project_config(cls) -> Path | None:
        return find_project_config()

    @classmethod
    def save_user_config(cls, config: HostexecConfig) -> Path:
        """Write config to the user config file and return its path."""
        path = user_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            toml.dump(config.model_dump(by_alias=True, exclude_none=True), f)
        logger.info("Saved config to %s", path)
        return path
