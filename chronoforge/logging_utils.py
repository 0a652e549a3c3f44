"""Process-wide logging for ChronoForge runs.

All diagnostics go to the run log file (every level) and to the terminal:
INFO on stdout, WARN and ERROR on stderr.  Both sinks carry a timestamp and a
severity tag.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "chronoforge"
LOG_FORMAT = "[%(asctime)s] [%(severity)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S%z"

_SEVERITY_TAGS: dict[int, str] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


class SeverityFormatter(logging.Formatter):
    """Formatter that renders levels as the short INFO/WARN/ERROR tags."""

    def format(self, record: logging.LogRecord) -> str:
        record.severity = _SEVERITY_TAGS.get(record.levelno, record.levelname)
        return super().format(record)


class _BelowWarning(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


def configure_logging(log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """Configure the ``chronoforge`` logger for one run.

    The log file is created fresh (truncated) and stays open for the lifetime
    of the process; every component appends to it through child loggers.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    shutdown_logging()

    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setFormatter(SeverityFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    file_handler.setLevel(level)

    stdout_handler = RichHandler(
        console=Console(),
        show_path=False,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
        markup=False,
    )
    stdout_handler.setLevel(level)
    stdout_handler.addFilter(_BelowWarning())

    stderr_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
        markup=False,
    )
    stderr_handler.setLevel(logging.WARNING)

    logger.addHandler(file_handler)
    logger.addHandler(stdout_handler)
    logger.addHandler(stderr_handler)
    logger.propagate = False
    return logger


def shutdown_logging() -> None:
    """Flush, close and detach every handler on the ``chronoforge`` logger."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
