"""Logging helpers."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_LOGGING_CONFIGURED = False


def configure_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Route the package loggers through a rich handler (once per process)."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))

    root = logging.getLogger("setupkit")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)
    _LOGGING_CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
