"""Configuration schema dataclasses for scriptdeck.

Defines the structure of configuration at all levels (system, user, project).
All fields are optional to support partial configs that merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Conventional Git for Windows install locations, probed in order
DEFAULT_GIT_BASH_PATHS = [
    "C:\\Program Files\\Git\\bin\\bash.exe",
    "C:\\Program Files (x86)\\Git\\bin\\bash.exe",
]


@dataclass
class ScriptsConfig:
    """Script record store configuration.

    Example config.yaml:
        scripts:
          directory: ~/Documents/scripts
          default_shell: sh
    """

    directory: str | None = None  # Default: platform data dir (see paths.py)
    default_shell: str | None = None  # Default: powershell on Windows, bash elsewhere


@dataclass
class ExecutionConfig:
    """Child process execution configuration.

    Example config.yaml:
        execution:
          cwd: ~/work
          encoding: utf-8
          chunk_size: 4096
          git_bash_paths:
            - 'D:\\Tools\\Git\\bin\\bash.exe'
    """

    cwd: str | None = None  # Default: user home directory
    encoding: str = "utf-8"  # Used to decode child stdout/stderr
    chunk_size: int = 4096  # Max bytes per streamed read
    git_bash_paths: list[str] = field(default_factory=lambda: list(DEFAULT_GIT_BASH_PATHS))


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object.

    Aggregates all configuration sections. All fields use default factories
    to ensure partial configs work correctly with deep merging.
    """

    scripts: ScriptsConfig = field(default_factory=ScriptsConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections are kept here untouched
    extra: dict[str, Any] = field(default_factory=dict)
