"""Time helpers."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Default clock for the session and deployment layers."""
    return datetime.now(timezone.utc)
