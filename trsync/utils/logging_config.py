"""Structured logging configuration for trsync.

Provides logging setup with correlation IDs, structured output,
and configurable log levels.
"""

from __future__ import annotations

import json
import logging
import logging.config
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from trsync.utils.exceptions import SyncError
from trsync.utils.rich_logging import create_rich_handler

if TYPE_CHECKING:
    from trsync.models import ObservabilityConfig

# Context variable for correlation ID
correlation_id: ContextVar[str | None] = cast(
    "ContextVar[str | None]",
    ContextVar("correlation_id", default=None),
)

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "correlation_id",
    }
)


class CorrelationFilter(logging.Filter):
    """Filter to add correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record."""
        record.correlation_id = correlation_id.get() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "correlation_id"):
            log_entry["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Extra fields passed through ``extra=``
        log_entry.update(
            {
                key: value
                for key, value in record.__dict__.items()
                if key not in _RESERVED_RECORD_KEYS
            }
        )

        return json.dumps(log_entry, default=str)


def setup_logging(config: ObservabilityConfig) -> None:
    """Set up logging with a Rich console handler and optional JSON file log."""
    level = config.log_level.value

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "simple": {
                "format": "%(asctime)s %(levelname)s %(correlation_id)s %(name)s.%(funcName)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "correlation": {
                "()": CorrelationFilter,
            },
        },
        "handlers": {},
        "loggers": {
            "trsync": {
                "level": level,
                "handlers": [],
                "propagate": False,
            },
        },
    }

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "structured" if config.structured_logging else "simple",
            "filters": ["correlation"],
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,  # 10MB
            "backupCount": 5,
        }
        logging_config["loggers"]["trsync"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    # RichHandler is attached after dictConfig so it can own its console
    rich_handler = create_rich_handler(
        level=level,
        show_correlation_id=config.log_correlation_id,
    )
    rich_handler.addFilter(CorrelationFilter())
    logging.getLogger("trsync").addHandler(rich_handler)

    if config.log_correlation_id:
        correlation_id.set(str(uuid.uuid4()))


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``trsync`` namespace."""
    if name == "trsync" or name.startswith("trsync."):
        return logging.getLogger(name)
    return logging.getLogger(f"trsync.{name}")


def set_correlation_id(corr_id: str | None = None) -> str:
    """Set correlation ID for the current context."""
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id.get()


class LoggingContext:
    """Context manager that logs start, completion and failure of an operation."""

    def __init__(
        self,
        operation: str,
        log_level: int = logging.DEBUG,
        slow_threshold: float = 1.0,
        logger: logging.Logger | None = None,
        **kwargs: Any,
    ):
        """Initialize operation context manager.

        Args:
            operation: Name of the operation
            log_level: Level for start/completion messages
            slow_threshold: Duration in seconds above which completion is logged at INFO
            logger: Logger to use (defaults to this module's logger)
            **kwargs: Additional context to include in logs

        """
        self.operation = operation
        self.kwargs = kwargs
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level
        self.slow_threshold = slow_threshold
        self.start_time: float | None = None

    def __enter__(self) -> LoggingContext:
        """Enter the context manager."""
        self.start_time = time.monotonic()
        set_correlation_id()
        self.logger.log(self.log_level, "Starting %s", self.operation, extra=self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Exit the context manager."""
        duration = time.monotonic() - self.start_time if self.start_time else 0.0

        if exc_type is None:
            level = self.log_level
            if duration >= self.slow_threshold:
                level = max(level, logging.INFO)
            self.logger.log(
                level,
                "Completed %s in %.3fs",
                self.operation,
                duration,
                extra=self.kwargs,
            )
        else:
            self.logger.error(
                "Failed %s in %.3fs: %s",
                self.operation,
                duration,
                exc_val,
                extra=self.kwargs,
            )

        return False  # Don't suppress exceptions


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "") -> None:
    """Log an exception with context."""
    if isinstance(exc, SyncError):
        logger.error(
            "%s: %s",
            context,
            exc.message,
            extra={"details": exc.details},
        )
    else:
        logger.error("%s: %s", context, exc, exc_info=exc)
