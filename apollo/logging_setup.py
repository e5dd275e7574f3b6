"""Loguru sink configuration shared by the CLI and the worker."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from config import Settings

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {extra} | {message}"


def configure_logging(settings: Settings, level: str | None = None) -> None:
    """
    Replace loguru's default sink.

    Installs a stderr sink at ``level`` (default ``settings.log_level``) and,
    when ``settings.log_file`` is set, a rotating file sink.
    """
    level = level or settings.log_level

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level=level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
