"""Kit configuration.

A kit root is a directory holding ``config.yaml`` or, for bare payload
trees, ``checksums.sha256``. Settings come from, in increasing priority:
built-in defaults, ``config.yaml`` and ``OFFLINE_KIT_*`` environment
variables. Command-line options override all of these.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from offline_kit.manifest import MANIFEST_NAME
from offline_kit.platforms import normalize_platform_id
from offline_kit.verify import DEFAULT_MAX_WORKERS

logger = logging.getLogger(__name__)

CONFIG_NAME = "config.yaml"

# Default location for installs when no kit root is found
DEFAULT_PREFIX = Path.home() / ".offline-kit" / "installed"

ENV_PREFIX = "OFFLINE_KIT_PREFIX"
ENV_PAYLOAD_ROOT = "OFFLINE_KIT_PAYLOAD_ROOT"
ENV_PLATFORM = "OFFLINE_KIT_PLATFORM"

_ALIASES = {"payloadRoot": "payload_root", "maxWorkers": "max_workers"}


class ConfigError(Exception):
    """Error loading kit configuration."""

    pass


class KitConfig(BaseModel):
    """Effective kit settings."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    kit_root: Path | None = Field(default=None, exclude=True)
    config_file: Path | None = Field(default=None, exclude=True)
    payload_root: Path = Field(default_factory=Path.cwd, alias="payloadRoot")
    prefix: Path = Field(default=DEFAULT_PREFIX)
    platform: str | None = None
    catalog: Path | None = None
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, le=32, alias="maxWorkers")

    @field_validator("platform")
    @classmethod
    def _canonical_platform(cls, value: str | None) -> str | None:
        return normalize_platform_id(value) if value else None


def find_kit_root(start_path: Path | None = None) -> Path | None:
    """Find nearest parent directory containing a kit config or manifest.

    Args:
        start_path: Starting directory. Defaults to cwd.

    Returns:
        Path to kit root or None if not inside a kit.
    """
    path = (start_path or Path.cwd()).resolve()
    for candidate in (path, *path.parents):
        if (candidate / CONFIG_NAME).is_file() or (candidate / MANIFEST_NAME).is_file():
            return candidate
    return None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def _resolve_relative(data: dict[str, Any], base: Path) -> dict[str, Any]:
    """Resolve path settings relative to the directory of the config file."""
    resolved = dict(data)
    for key in ("payload_root", "payloadRoot", "prefix", "catalog"):
        value = resolved.get(key)
        if value:
            path = Path(os.path.expanduser(str(value)))
            resolved[key] = path if path.is_absolute() else base / path
    return resolved


def load_config(
    config_file: Path | None = None,
    start_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> KitConfig:
    """Load the effective kit configuration.

    Args:
        config_file: Explicit config file; skips kit-root discovery.
        start_path: Directory to start kit-root discovery from.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        KitConfig with all defaults filled in.

    Raises:
        ConfigError: If the config file is missing or invalid.
    """
    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    kit_root: Path | None = None

    if config_file is not None:
        if not config_file.is_file():
            raise ConfigError(f"Config file not found: {config_file}")
        kit_root = config_file.resolve().parent
    else:
        kit_root = find_kit_root(start_path)
        if kit_root is not None and (kit_root / CONFIG_NAME).is_file():
            config_file = kit_root / CONFIG_NAME

    if kit_root is not None:
        # A kit keeps its payloads and installs beside each other.
        data["payload_root"] = kit_root
        data["prefix"] = kit_root / "installed"

    if config_file is not None:
        logger.debug("Loading config from %s", config_file)
        file_data = _resolve_relative(_read_yaml(config_file), config_file.resolve().parent)
        for alias, name in _ALIASES.items():
            if alias in file_data:
                file_data[name] = file_data.pop(alias)
        data.update(file_data)

    if env.get(ENV_PREFIX):
        data["prefix"] = Path(env[ENV_PREFIX])
    if env.get(ENV_PAYLOAD_ROOT):
        data["payload_root"] = Path(env[ENV_PAYLOAD_ROOT])
    if env.get(ENV_PLATFORM):
        data["platform"] = env[ENV_PLATFORM]

    try:
        return KitConfig(kit_root=kit_root, config_file=config_file, **data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
