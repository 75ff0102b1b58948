"""Logging for scriptdeck.

Everything logs under the ``scriptdeck`` logger (children such as
``scriptdeck.execution.supervisor`` and ``scriptdeck.store``). Nothing is
emitted until setup_logging() attaches a handler:

- a log file, from ``logging.file`` in config or ``SCRIPTDECK_LOG``
- otherwise stderr, but only when it is a terminal, so piped ``run``
  output stays clean

Verbosity (``-v`` / ``logging.verbose``): 0 error, 1 warning, 2 info,
3 verbose, 4 trace.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scriptdeck.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("scriptdeck")

_VERBOSITY_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_initialized = False


def resolve_level(config: LoggingConfig | None) -> int:
    """Pick the effective log level; ``verbose`` wins over ``level``.

    Unknown level names fall back to INFO.
    """
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        index = min(max(config.verbose, 0), len(_VERBOSITY_LEVELS) - 1)
        return _VERBOSITY_LEVELS[index]
    if config.level:
        level = logging.getLevelName(config.level.upper())
        if isinstance(level, int):
            return level
    return logging.INFO


def _log_file(config: LoggingConfig | None) -> str | None:
    path = (config.file if config else None) or os.environ.get("SCRIPTDECK_LOG")
    return os.path.expanduser(path) if path else None


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Attach the scriptdeck handler. Only the first call has any effect."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = resolve_level(config)
    logger.setLevel(level)

    handler: logging.Handler | None = None
    path = _log_file(config)
    if path:
        try:
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError as e:
            if sys.stderr.isatty():
                print(f"[scriptdeck] Failed to open log file: {e}", file=sys.stderr)
    if handler is None and sys.stderr.isatty():
        handler = logging.StreamHandler(sys.stderr)
    if handler is None:
        return

    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get the scriptdeck logger, or its child ``scriptdeck.<name>``."""
    return logger.getChild(name) if name else logger
