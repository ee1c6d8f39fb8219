"""Shared utilities."""

from .clock import utc_now
from .logging import configure_logging, get_logger

__all__ = ["utc_now", "configure_logging", "get_logger"]
