"""
Configuration loader — reads dotstrap.yml into Settings.

Lookup order:
    --config PATH  >  DOTSTRAP_CONFIG  >  dotstrap.yml walking up from cwd
    >  ~/.config/dotstrap/config.yml  >  built-in defaults

A missing settings file is not an error; an unreadable or invalid
one is.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from dotstrap.core.models.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("dotstrap.yml", "dotstrap.yaml")
USER_CONFIG = Path(".config") / "dotstrap" / "config.yml"

ENV_CONFIG = "DOTSTRAP_CONFIG"
ENV_HOME = "DOTSTRAP_HOME"
ENV_DOTFILES = "DOTSTRAP_DOTFILES"


class ConfigError(Exception):
    """Raised when the settings file is unreadable or invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for dotstrap.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from. Defaults to cwd.

    Returns:
        Path to the config file, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        for name in CONFIG_FILENAMES:
            candidate = current / name
            if candidate.is_file():
                return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    user_config = Path.home() / USER_CONFIG
    if user_config.is_file():
        return user_config
    return None


def load_settings(
    path: Path | None = None,
    *,
    home: Path | None = None,
    dotfiles_dir: Path | None = None,
) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit settings file. None means search for one.
        home: Override for ``home`` (CLI flag, then DOTSTRAP_HOME).
        dotfiles_dir: Override for ``dotfiles_dir`` (CLI flag, then
            DOTSTRAP_DOTFILES).

    Returns:
        Validated Settings.

    Raises:
        ConfigError: If an explicit file is missing, or any file is
            not valid YAML or does not match the schema.
    """
    explicit = path is not None
    if path is None and os.environ.get(ENV_CONFIG):
        path = Path(os.environ[ENV_CONFIG])
        explicit = True
    if path is None:
        path = find_config_file()

    data: dict = {}
    if path is not None:
        if not path.is_file():
            if explicit:
                raise ConfigError(f"Config file not found: {path}")
        else:
            data = _read_yaml(path)
            logger.info("Loaded settings from %s", path)
    else:
        logger.debug("No settings file found, using defaults")

    home = home or _env_path(ENV_HOME)
    dotfiles_dir = dotfiles_dir or _env_path(ENV_DOTFILES)
    if home is not None:
        data["home"] = str(home)
    if dotfiles_dir is not None:
        data["dotfiles_dir"] = str(dotfiles_dir)

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path or 'overrides'}: {e}") from e


def _read_yaml(path: Path) -> dict:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    return data


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else None
