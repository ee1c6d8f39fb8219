"""
Configuration Store

Durable keyed documents for the setup session: session state, draft
configuration, setup token and deployment status. The session, draft
and token documents share one reentrant lock so read-modify-write
sequences can be made atomic with ``transaction()``. The deployment
document has its own lock and never contends with them.
"""

import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from ..errors import StorageError
from ..utils.logging import get_logger

logger = get_logger(__name__)

STATE_DOC = "setup-state"
CONFIG_DOC = "config-draft"
TOKEN_DOC = "tokens"
DEPLOYMENT_DOC = "deployment-status"

DOCUMENTS = (STATE_DOC, CONFIG_DOC, TOKEN_DOC, DEPLOYMENT_DOC)

Document = Dict[str, Any]


class ConfigurationStore(ABC):
    """
    Base class for document stores.

    Subclasses implement raw reads and writes; locking lives here.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._deployment_lock = threading.RLock()

    def _lock_for(self, name: str) -> threading.RLock:
        if name not in DOCUMENTS:
            raise StorageError(f"Unknown document: {name}")
        return self._deployment_lock if name == DEPLOYMENT_DOC else self._lock

    @contextmanager
    def transaction(self) -> Iterator["ConfigurationStore"]:
        """Hold the session lock across several loads and saves."""
        with self._lock:
            yield self

    @contextmanager
    def deployment_transaction(self) -> Iterator["ConfigurationStore"]:
        """Hold the deployment lock across several loads and saves."""
        with self._deployment_lock:
            yield self

    def load(self, name: str) -> Optional[Document]:
        """
        Load a document.

        Returns:
            A private copy of the document, or None when it does not exist
        """
        with self._lock_for(name):
            return self._read(name)

    def save(self, name: str, document: Document) -> None:
        """Replace a document. On failure the previous version is kept."""
        with self._lock_for(name):
            self._write(name, document)

    def delete(self, name: str) -> None:
        with self._lock_for(name):
            self._remove(name)

    def reset(self) -> None:
        """Delete every document."""
        with self._lock, self._deployment_lock:
            for name in DOCUMENTS:
                self._remove(name)
        logger.info("Store reset")

    @abstractmethod
    def _read(self, name: str) -> Optional[Document]:
        pass

    @abstractmethod
    def _write(self, name: str, document: Document) -> None:
        pass

    @abstractmethod
    def _remove(self, name: str) -> None:
        pass


class MemoryStore(ConfigurationStore):
    """In-process store, mainly for tests and dry runs."""

    def __init__(self):
        super().__init__()
        self._documents: Dict[str, Document] = {}

    def _read(self, name: str) -> Optional[Document]:
        document = self._documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def _write(self, name: str, document: Document) -> None:
        self._documents[name] = copy.deepcopy(document)

    def _remove(self, name: str) -> None:
        self._documents.pop(name, None)


class FileStore(ConfigurationStore):
    """
    JSON files in a data directory.

    Writes go to a temporary file in the same directory and are moved
    into place with os.replace, so a reader never sees a partial file.
    """

    def __init__(self, data_dir: Union[str, Path]):
        """
        Initialize the file store.

        Args:
            data_dir: Directory holding the JSON documents
        """
        super().__init__()
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def _read(self, name: str) -> Optional[Document]:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {path}: {e}")

    def _write(self, name: str, document: Document) -> None:
        path = self.path_for(name)
        tmp_name = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.data_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write {path}: {e}")

    def _remove(self, name: str) -> None:
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Cannot delete {path}: {e}")
