"""
Process-wide logging for DailyDrop.

One stream handler on the root logger, UTC timestamps to match the UTC times
stored with drops and analyses, and the Google SDK / HTTP client loggers held
at WARNING so a provider retry storm does not drown the pipeline's own lines.

Environment:
    DAILYDROP_LOG_LEVEL      level for dailydrop loggers and the root (default INFO)
    DAILYDROP_SDK_LOG_LEVEL  level for third-party SDK loggers (default WARNING)
"""

from __future__ import annotations

import logging
import os
import time
from typing import Final

_HANDLER_ATTACHED: bool = False
_FORMAT: Final[str] = "%(asctime)sZ - %(name)s - %(levelname)s - %(message)s"
_DATEFMT: Final[str] = "%Y-%m-%dT%H:%M:%S"

SDK_LOGGERS: Final[tuple[str, ...]] = (
    "google.auth",
    "google.api_core",
    "google.generativeai",
    "grpc",
    "urllib3",
    "httpx",
)


def _level_from_env(var: str, default: str) -> int:
    level_name = os.getenv(var, default).upper()
    return getattr(logging, level_name, getattr(logging, default))


def resolve_level_name() -> str:
    """DAILYDROP_LOG_LEVEL as a lowercase name, the form uvicorn expects."""
    return logging.getLevelName(_level_from_env("DAILYDROP_LOG_LEVEL", "INFO")).lower()


def _utc_formatter() -> logging.Formatter:
    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)
    formatter.converter = time.gmtime
    return formatter


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; the first call installs the shared handler."""
    global _HANDLER_ATTACHED

    level = _level_from_env("DAILYDROP_LOG_LEVEL", "INFO")
    root = logging.getLogger()

    if not _HANDLER_ATTACHED:
        handler = logging.StreamHandler()
        handler.setFormatter(_utc_formatter())
        root.addHandler(handler)
        _HANDLER_ATTACHED = True

        sdk_level = _level_from_env("DAILYDROP_SDK_LOG_LEVEL", "WARNING")
        for sdk_name in SDK_LOGGERS:
            logging.getLogger(sdk_name).setLevel(sdk_level)

    root.setLevel(level)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
