"""Workspace-scoped key-value persistence.

The association store only needs a small durable map of JSON-compatible
values. ``JsonFileKeyValueStore`` keeps the whole map in one JSON document
and replaces it atomically on every write.
"""

import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from branchlink.errors import StoreIOError

logger = structlog.get_logger(__name__)

STATE_FORMAT_VERSION = "1.0"


class KeyValueStore(ABC):
    """Abstract durable key-value map."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Replace the value stored under key."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key, returning whether it existed."""

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List keys starting with prefix."""


class InMemoryKeyValueStore(KeyValueStore):
    """Non-durable store, used in tests and for embedding."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]


class JsonFileKeyValueStore(KeyValueStore):
    """Key-value store persisted to a single JSON file.

    The state is stored in ``<state_dir>/state.json``. Every write goes to a
    temporary file first and is then renamed over the state file, so a crash
    mid-write leaves either the old or the new document, never a mix.
    """

    def __init__(self, state_dir: Path) -> None:
        """Initialize the store.

        Args:
            state_dir: Directory holding the state file
        """
        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / "state.json"
        self._data: Optional[Dict[str, Any]] = None

    def _ensure_state_dir(self) -> None:
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"Cannot create state directory {self.state_dir}: {e}") from e

    def _load(self) -> Dict[str, Any]:
        """Load the document from disk once, creating an empty one if needed."""
        if self._data is not None:
            return self._data

        if not self.state_file.exists():
            self._data = {}
            return self._data

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                document = json.load(f)
            self._data = dict(document.get("entries", {}))
        except (json.JSONDecodeError, AttributeError, ValueError) as e:
            # A corrupted state file is replaced on the next write
            logger.warning("state_file_corrupt", path=str(self.state_file), error=str(e))
            self._data = {}
        except OSError as e:
            raise StoreIOError(f"Cannot read state file {self.state_file}: {e}") from e

        return self._data

    def _save(self, data: Dict[str, Any]) -> None:
        """Write the document atomically using a temporary file and rename."""
        self._ensure_state_dir()

        document = {"version": STATE_FORMAT_VERSION, "entries": data}
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=self.state_dir, prefix=".state_", suffix=".json.tmp"
            )
        except OSError as e:
            raise StoreIOError(f"Cannot write state file {self.state_file}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, default=str)
            os.replace(temp_path, self.state_file)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreIOError(f"Cannot write state file {self.state_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        data = self._load()
        if key not in data:
            return default
        return copy.deepcopy(data[key])

    def set(self, key: str, value: Any) -> None:
        data = dict(self._load())
        data[key] = copy.deepcopy(value)
        self._save(data)
        # only adopt the new document once it is on disk
        self._data = data

    def delete(self, key: str) -> bool:
        data = dict(self._load())
        if key not in data:
            return False
        del data[key]
        self._save(data)
        self._data = data
        return True

    def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._load() if key.startswith(prefix)]

    def reload(self) -> None:
        """Drop the cached document so the next read goes to disk."""
        self._data = None
