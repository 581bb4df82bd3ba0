"""Key-value storage collaborators with change notifications."""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(ABC):
    """Interface for storing JSON values under string keys."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    @abstractmethod
    def _read(self, key: str) -> Any:
        """Return the stored value or raise KeyError."""
        pass

    @abstractmethod
    def _write(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def _delete(self, key: str) -> None:
        pass

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` when missing or unreadable."""
        try:
            return self._read(key)
        except KeyError:
            return default

    def set(self, key: str, value_or_updater: Any, default: Any = None) -> Any:
        """Store a value, or the result of calling an updater with the previous value."""
        if callable(value_or_updater):
            value = value_or_updater(self.get(key, default))
        else:
            value = value_or_updater
        self._write(key, value)
        self._notify(key, value)
        return value

    def clear(self, key: str) -> None:
        self._delete(key)
        self._notify(key, None)

    def subscribe(self, key: str, callback: Listener) -> Callable[[], None]:
        """Call ``callback(key, value)`` after every change of ``key``.

        Returns a function that removes the subscription.
        """
        self._listeners.setdefault(key, []).append(callback)

        def unsubscribe():
            listeners = self._listeners.get(key, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._listeners.get(key, [])):
            try:
                callback(key, value)
            except Exception as e:
                logger.error(f"Error in storage listener for '{key}': {e}")


class InMemoryStore(KeyValueStore):
    """Stores JSON-encoded copies in a dictionary."""

    def __init__(self):
        super().__init__()
        self._store: Dict[str, str] = {}

    def _read(self, key: str) -> Any:
        return json.loads(self._store[key])

    def _write(self, key: str, value: Any) -> None:
        self._store[key] = json.dumps(value)

    def _delete(self, key: str) -> None:
        self._store.pop(key, None)


class JSONFileStore(KeyValueStore):
    """Stores each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: str):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            raise KeyError(key)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read storage file {path}: {e}")
            raise KeyError(key) from e

    def _write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
