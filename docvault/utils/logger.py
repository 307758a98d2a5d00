"""Loguru configuration for the CLI and the API server."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logger(log_level: str = "INFO", log_file: Optional[str] = "logs/docvault.log") -> None:
    """
    Replace loguru's default handler with the vault's sinks.

    - stderr: coloured and short, so stdout stays free for CLI output / JSON
    - log_file: full location info, rotated at 10 MB, zipped, kept a week;
      pass None to log to stderr only (tests, containers)

    Messages carry their component as a "[Component]" prefix.
    """
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            # Worker threads and the event loop log concurrently
            enqueue=True,
        )

    logger.debug(f"[Logger] level={log_level} | file={log_file or '-'}")
