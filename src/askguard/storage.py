"""Scoped key-value storage for the persisted session and usage window.

Stores are asynchronous and offer no transactions: two writers doing
read-modify-write on the same key race, and the later write wins in full.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

AUTH_SESSION_KEY = 'auth_session'
USAGE_WINDOW_KEY = 'usage_window'

DEFAULT_STATE_FILE = Path.home() / '.askguard' / 'state.json'


class ScopedStorage(ABC):
    """Abstract async key-value store holding JSON-serializable values."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value for key, or None when absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete key. Removing a missing key is a no-op."""
        pass


class InMemoryStorage(ScopedStorage):
    """Process-local store. Values are deep-copied on the way in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of everything stored, for inspection."""
        return copy.deepcopy(self._data)


class JsonFileStorage(ScopedStorage):
    """Store backed by a single JSON file (defaults to ~/.askguard/state.json).

    The whole file is rewritten on every set/remove.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path).expanduser() if path else DEFAULT_STATE_FILE

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (ValueError, OSError) as e:
            logger.warning(f'Ignoring unreadable state file {self.path}: {e}')
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

    async def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    async def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    async def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
