"""Loguru setup for the slideshow CLI.

Library modules only ever call `get_logger(__name__)`; sinks are attached
once by the CLI entry point. stderr shows warnings (everything with
--verbose), and an optional daily log file under the configured
directory keeps the full debug trail of each run.
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import DEFAULT_LOG_DIR, LOG_DATE_FORMAT, LOG_RETENTION

# Remove default handler to avoid duplicate console output
logger.remove()

_STDERR_FORMAT = "<level>{level: <8}</level> | <cyan>{extra[name]}</cyan> - <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} - {message}"

_handler_ids: list[int] = []


def _is_ours(record) -> bool:
    # Third-party loguru users never bind a component name
    return "name" in record["extra"]


def setup_logging(
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    file_logging: bool = True,
    retention: str = LOG_RETENTION,
) -> Optional[Path]:
    """Attach the stderr sink and, unless disabled, the daily log file.

    Calling it again is a no-op until `reset_logging()`.

    Args:
        verbose: Show DEBUG on stderr instead of WARNING
        log_dir: Directory for log files (default: ~/.local/share/slideshow-tools/logs/)
        file_logging: False keeps everything off disk; no directory is created
        retention: How long loguru keeps rotated files

    Returns:
        Path of today's log file, or None when file logging is off
    """
    if _handler_ids:
        return None

    _handler_ids.append(
        logger.add(
            sys.stderr,
            level="DEBUG" if verbose else "WARNING",
            format=_STDERR_FORMAT,
            colorize=True,
            filter=_is_ours,
        )
    )

    if not file_logging:
        return None

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / f"{datetime.now().strftime(LOG_DATE_FORMAT)}.log"

    _handler_ids.append(
        logger.add(
            log_file,
            level="DEBUG",
            format=_FILE_FORMAT,
            rotation="00:00",
            retention=retention,
            filter=_is_ours,
        )
    )
    get_logger("logging").debug(f"Logging to {log_file}")
    return log_file


def reset_logging() -> None:
    """Detach the sinks added by `setup_logging`."""
    while _handler_ids:
        logger.remove(_handler_ids.pop())


def get_logger(name: str):
    """Logger bound to a component name (usually the module's __name__)."""
    return logger.bind(name=name)
