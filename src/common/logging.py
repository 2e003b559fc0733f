"""
Logging configuration helpers.
Entry points call `configure_logging()` once; library modules only create named loggers.
The level comes from the validated `LOG_LEVEL` setting unless an entry point passes its own.
"""

from __future__ import annotations

import logging

from src.common.settings import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# HTTP client libraries log every connection at INFO.
NOISY_LOGGERS: tuple[str, ...] = ("urllib3", "requests", "asyncio")

_LOGGING_CONFIGURED = False


def resolve_level(level_name: str | None) -> int:
    if not level_name:
        return logging.INFO
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(*, level: str | None = None) -> None:
    """Configure process-wide logging once; `level` overrides the LOG_LEVEL setting."""

    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    resolved = resolve_level(level if level is not None else get_settings().LOG_LEVEL)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    _LOGGING_CONFIGURED = True
