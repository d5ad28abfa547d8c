"""
Structured logging setup using structlog.

Request-scoped values (request_id, method, path, admin) are bound with
structlog.contextvars by the HTTP layer and merged into every entry.
"""

import sys
import logging
from typing import List, Optional
from pathlib import Path

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import settings

QUIET_LOGGERS = (
    "uvicorn.access",
    "asyncio",
    "sqlalchemy.engine",
    "aiosqlite",
    "asyncpg",
    "aiohttp.access",
)


def _processors() -> List:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.is_development))

    return processors


def _build_formatter() -> logging.Formatter:
    if settings.log_format == "json":
        return logging.Formatter("%(message)s")
    return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logging(log_file: Optional[str] = None) -> None:
    """
    Configure structlog over stdlib logging.

    Development with console format logs through rich; everything else
    writes plain lines to stdout. log_file (or LOG_FILE) adds a file handler.
    """
    structlog.configure(
        processors=_processors(),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level)
    handlers: List[logging.Handler] = []

    if settings.is_development and settings.log_format != "json":
        handlers.append(RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            rich_tracebacks=True,
        ))
    else:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(_build_formatter())
        handlers.append(stream_handler)

    path = log_file or settings.log_file
    if path:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(_build_formatter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance (usually for __name__)."""
    return structlog.get_logger(name)
