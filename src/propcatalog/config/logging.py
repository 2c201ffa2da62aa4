"""Logging setup for the command line entry point."""

from __future__ import annotations

import logging
from typing import Final

from .env import optional_env_var
from .errors import InvalidConfigurationError

LOG_LEVEL_ENV: Final = "PROPCATALOG_LOG_LEVEL"
LOG_FORMAT: Final = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Request-level chatter from the HTTP stack only shows up when debugging.
_HTTP_LOGGERS: Final = ("httpx", "httpcore")


def configure_logging(*, level: int | str | None = None, force: bool = False) -> int:
    """Configure the root logger and return the level in effect.

    Without an explicit ``level`` the ``PROPCATALOG_LOG_LEVEL`` environment
    variable decides, falling back to INFO. Pass ``force=True`` to replace
    handlers installed earlier, e.g. in tests.
    """

    if level is None:
        level = optional_env_var(LOG_LEVEL_ENV)
    resolved = _resolve_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, datefmt="%H:%M:%S", force=force)
    http_level = resolved if resolved <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    return resolved


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise InvalidConfigurationError(LOG_LEVEL_ENV, level)
    return resolved
