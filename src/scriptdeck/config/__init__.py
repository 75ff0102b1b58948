"""Configuration management for scriptdeck.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/scriptdeck/ or %PROGRAMDATA%)
- User-level config (~/.config/scriptdeck/ or %APPDATA%)
- Project-level config ($project_root/.scriptdeck/)
- Environment variable overrides (highest priority)

Example usage:
    from scriptdeck.config import load_config

    config = load_config()
    print(config.execution.encoding)
    print(config.scripts.directory)
"""

from scriptdeck.config.loader import (
    deep_merge,
    get_config,
    load_config,
    reset_config,
)
from scriptdeck.config.paths import (
    get_config_paths,
    get_default_scripts_dir,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from scriptdeck.config.schema import (
    Config,
    ExecutionConfig,
    LoggingConfig,
    ScriptsConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "deep_merge",
    # Schema types
    "ScriptsConfig",
    "ExecutionConfig",
    "LoggingConfig",
    # Path utilities
    "get_config_paths",
    "get_default_scripts_dir",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
