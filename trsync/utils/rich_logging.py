"""Rich logging integration for trsync.

Provides the Rich console handler used by ``setup_logging``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text


class CorrelationRichHandler(RichHandler):
    """RichHandler that prefixes messages with the record's correlation ID."""

    LEVEL_COLORS: dict[str, str] = {
        "DEBUG": "dim",
        "INFO": "cyan",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold red",
    }

    def __init__(
        self,
        *args: Any,
        show_correlation_id: bool = False,
        **kwargs: Any,
    ) -> None:
        """Initialize handler.

        Args:
            *args: Positional arguments for RichHandler
            show_correlation_id: Prefix each message with its correlation ID
            **kwargs: Keyword arguments for RichHandler

        """
        super().__init__(*args, **kwargs)
        self.show_correlation_id = show_correlation_id

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        """Render message text, tinted by level."""
        text = Text(message, style=self.LEVEL_COLORS.get(record.levelname, ""))
        corr_id = getattr(record, "correlation_id", None)
        if self.show_correlation_id and corr_id:
            text = Text.assemble((f"[{corr_id[:8]}] ", "dim"), text)
        return text


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    show_correlation_id: bool = False,
) -> logging.Handler:
    """Create a RichHandler with correlation ID support.

    Args:
        console: Optional Rich Console instance (defaults to stderr)
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks
        show_correlation_id: Whether to prefix messages with the correlation ID

    Returns:
        Configured RichHandler instance

    """
    if console is None:
        console = Console(file=sys.stderr)

    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        markup=False,
        show_correlation_id=show_correlation_id,
    )
