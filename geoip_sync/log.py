"""Logging setup built on loguru.

Every module gets its logger through `log(name)`, which binds the component
name shown in brackets in front of each message.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> "
    "[<level>{level}</level>] | "
    "<cyan>{extra[name]}</cyan> | "
    "<level>{message}</level>"
)

logger.configure(extra={"name": "GeoIPSync"})


def setup_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink.

    Args:
        level: Minimum level to emit.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT, enqueue=False)


def log(name: str) -> "Logger":
    """Get a logger bound to a component name."""
    return logger.bind(name=name)


def system_logger(name: str) -> "Logger":
    return logger.bind(name=f"System/{name}")


__all__ = ["log", "logger", "setup_logging", "system_logger"]
