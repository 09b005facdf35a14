"""Configuration management for vsrkit.

Settings come from three layers. The packaged ``defaults.yaml`` is
overlaid with the user's ``~/.vsrkit/config.yaml`` (or the file given on
the command line), and ``VSRKIT_*`` environment variables fill whatever
the files leave empty. String values may reference the environment as
``${NAME}``.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from vsrkit.errors import ConfigurationError, InvalidConfigError

from .settings import LoggingConfig, RunnerConfig, Settings

_settings: Optional[Settings] = None

CONFIG_DIR = Path.home() / ".vsrkit"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: Any) -> Any:
    """Substitute ``${NAME}`` references; strings left empty become None."""
    if isinstance(value, str):
        value = _ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), value)
        return value or None
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Overlay override onto base, merging nested mappings key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _drop_empty(config: dict) -> dict:
    """Remove None leaves so environment variables and model defaults apply."""
    return {
        key: _drop_empty(value) if isinstance(value, dict) else value
        for key, value in config.items()
        if value is not None
    }


def _read_config_file(path: Path) -> dict:
    """Read a YAML mapping, treating a missing or empty file as no settings.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a mapping.
    """
    if not path.is_file():
        return {}

    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}", details={"path": str(path)}) from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"{path} must contain a mapping", details={"path": str(path)})
    return content


def _build_settings(values: dict) -> Settings:
    try:
        return Settings(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidConfigError(field, first.get("input"), first["msg"]) from e


def load_settings(config_path: Optional[Path] = None, force_reload: bool = False) -> Settings:
    """Load and cache the settings.

    Args:
        config_path: User config file; defaults to ``~/.vsrkit/config.yaml``.
        force_reload: Reload even if settings are already cached.

    Returns:
        The cached Settings instance.

    Raises:
        ConfigurationError: If a config file cannot be read.
        InvalidConfigError: If a value fails validation.
    """
    global _settings

    if _settings is not None and not force_reload:
        return _settings

    merged = _deep_merge(
        _read_config_file(DEFAULTS_FILE),
        _read_config_file(config_path or CONFIG_FILE),
    )
    _settings = _build_settings(_drop_empty(_expand_env_vars(merged)))

    return _settings


def get_settings() -> Settings:
    """Get the current settings instance, loading if necessary."""
    if _settings is None:
        return load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access reloads them."""
    global _settings
    _settings = None


__all__ = [
    "LoggingConfig",
    "RunnerConfig",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
    "CONFIG_DIR",
    "CONFIG_FILE",
]
