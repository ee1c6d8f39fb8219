"""Persistent documents for the setup session."""

from .store import (
    ConfigurationStore,
    FileStore,
    MemoryStore,
    STATE_DOC,
    CONFIG_DOC,
    TOKEN_DOC,
    DEPLOYMENT_DOC,
)

__all__ = [
    "ConfigurationStore",
    "FileStore",
    "MemoryStore",
    "STATE_DOC",
    "CONFIG_DOC",
    "TOKEN_DOC",
    "DEPLOYMENT_DOC",
]
