"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Cascading merge of system, user and project files
- Environment variable overrides
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from scriptdeck.config.paths import get_config_paths
from scriptdeck.config.schema import (
    DEFAULT_GIT_BASH_PATHS,
    Config,
    ExecutionConfig,
    LoggingConfig,
    ScriptsConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("scriptdeck.config")

_cached_config: Config | None = None

_KNOWN_SECTIONS = {"scripts", "execution", "logging"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML as dict, or empty dict on error.
    """
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested dicts merge recursively, lists and scalars are replaced, and
    None in ``override`` leaves the base value alone so partial files can
    omit keys.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables.

    SCRIPTDECK_LOG sets the log file, SCRIPTDECK_HOME the scripts directory.
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("SCRIPTDECK_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    scripts_home = os.environ.get("SCRIPTDECK_HOME")
    if scripts_home:
        overrides.setdefault("scripts", {})["directory"] = scripts_home

    return overrides


def _as_int(value: Any, default: int | None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass.

    Args:
        data: Merged configuration dictionary.

    Returns:
        Typed Config object.
    """
    scripts_data = data.get("scripts", {})
    scripts = ScriptsConfig(
        directory=scripts_data.get("directory"),
        default_shell=scripts_data.get("default_shell"),
    )

    exec_data = data.get("execution", {})
    git_paths = exec_data.get("git_bash_paths")
    if not isinstance(git_paths, list):
        git_paths = list(DEFAULT_GIT_BASH_PATHS)
    chunk_size = _as_int(exec_data.get("chunk_size"), 4096) or 4096
    execution = ExecutionConfig(
        cwd=exec_data.get("cwd"),
        encoding=exec_data.get("encoding") or "utf-8",
        chunk_size=max(1, chunk_size),
        git_bash_paths=[str(p) for p in git_paths if p],
    )

    log_data = data.get("logging", {})
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=_as_int(log_data.get("verbose"), None),
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        scripts=scripts,
        execution=execution,
        logging=logging_config,
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($project_root/.scriptdeck/config.yaml)
    3. User config (~/.config/scriptdeck/config.yaml or %APPDATA%)
    4. System config (/etc/scriptdeck/ or %PROGRAMDATA%)

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    merged: dict[str, Any] = {}
    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, config_data)

    merged = deep_merge(merged, env_overrides())

    config = dict_to_config(merged)

    # Cache only global config (no project_root)
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config.

    Useful for testing or forcing a reload.
    """
    global _cached_config
    _cached_config = None
