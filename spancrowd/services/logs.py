"""
Logging for spancrowd.

Events are written as JSON lines to a rotating file in the application data
directory, and to the console when debugging.  While a crowd job is being
worked on, its ID is bound with :func:`job_context` so that every event,
including the per-record skip warnings of the judgment parser, can be traced
back to the job it came from.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from spancrowd.config import Settings, get_app_data_path

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

#: Name of the log file inside the log directory.
LOG_FILE_NAME = "spancrowd.log.json"

#: Loggers of the HTTP stack that are only shown in full when debugging.
TRANSPORT_LOGGERS = ("urllib3", "requests")


def get_log_dir() -> Path:
    """
    Get the path to the log directory, creating it if needed.

    Returns:
        The path to the log directory.

    """
    log_dir = get_app_data_path() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def get_log_file_path() -> Path:
    return get_log_dir() / LOG_FILE_NAME


def _file_handler(path: Path) -> logging.Handler:
    # Rotated every 3 weeks, 5 old files kept
    handler = logging.handlers.TimedRotatingFileHandler(
        path, when="D", interval=21, backupCount=5, encoding="utf-8"
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
        )
    )
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(),
        )
    )
    return handler


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and standard logging.

    With debugging off, events of level INFO and up go to the log file and
    the HTTP stack only reports warnings.  With debugging on, everything is
    logged to both the file and stderr.

    Keyword Args:
        settings: Settings to read the debug flag from.  If None, the settings
            are read from the environment.

    """
    settings = settings or Settings.from_env()
    handlers = [_file_handler(get_log_file_path())]
    if settings.debug:
        handlers.append(_console_handler())

    logging.basicConfig(
        handlers=handlers,
        level=logging.DEBUG if settings.debug else logging.INFO,
        force=True,
    )
    transport_level = logging.DEBUG if settings.debug else logging.WARNING
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """
    Add ``job_id`` to every event logged inside the block.

    Args:
        job_id: The ID of the crowd job being worked on

    """
    with structlog.contextvars.bound_contextvars(job_id=str(job_id)):
        yield


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
