"""Layered key-value cache: local file backend in front of a remote backend."""
import logging
import threading
from typing import Any, Callable, Dict, Optional

from storage.local_store import LocalStore

logger = logging.getLogger(__name__)


class CacheBackend:
    """Key-value backend interface."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class JsonFileCacheBackend(CacheBackend):
    """
    Cache backed by one JSON object file in a LocalStore.

    The whole map is loaded lazily on first access and rewritten
    atomically on every set. Access is serialized so concurrent runs
    in one process never write a half-updated map.
    """

    def __init__(self, store: LocalStore, filename: str,
                 sanitize: Optional[Callable[[Any], Optional[Any]]] = None):
        self.store = store
        self.filename = filename
        self.sanitize = sanitize or (lambda value: value)
        self._entries: Optional[Dict[str, Any]] = None
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, Any]:
        with self._lock:
            if self._entries is None:
                raw = self.store.read_json(self.filename)
                entries = {}
                if isinstance(raw, dict):
                    for key, value in raw.items():
                        cleaned = self.sanitize(value)
                        if key and cleaned is not None:
                            entries[key] = cleaned
                self._entries = entries
            return self._entries

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            entries = self._load()
            entries[key] = value
            self.store.write_json(self.filename, entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._load())


class RemoteCacheBackend(CacheBackend):
    """Adapter exposing a remote store table through get/set callables."""

    def __init__(self, getter: Callable[[str], Optional[Any]],
                 setter: Callable[[str, Any], None]):
        self.getter = getter
        self.setter = setter

    def get(self, key: str) -> Optional[Any]:
        return self.getter(key)

    def set(self, key: str, value: Any) -> None:
        self.setter(key, value)


class LayeredCache:
    """
    Read-through cache over a local and an optional remote backend.

    Reads check local first, then remote (any remote failure is a miss).
    A remote hit is copied into the local backend. Writes go to local
    synchronously and to remote best-effort. None is never stored.
    """

    def __init__(self, local: CacheBackend, remote: Optional[CacheBackend] = None):
        self.local = local
        self.remote = remote

    def get(self, key: str) -> Optional[Any]:
        if not key:
            return None

        value = self.local.get(key)
        if value is not None:
            return value

        if self.remote is None:
            return None

        try:
            value = self.remote.get(key)
        except Exception as e:
            logger.warning(f"Remote cache read failed for key '{key}': {e}")
            return None

        if value is not None:
            self.local.set(key, value)
        return value

    def set(self, key: str, value: Any) -> None:
        if not key or value is None:
            return

        self.local.set(key, value)

        if self.remote is None:
            return
        try:
            self.remote.set(key, value)
        except Exception as e:
            logger.warning(f"Remote cache write failed for key '{key}': {e}")
