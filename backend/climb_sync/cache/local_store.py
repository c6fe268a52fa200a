"""JSON-file key/value cache that survives restarts and outages."""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHED_PROFILE_KEY = "cached_profile"
LAST_SYNC_KEY = "last_sync_timestamp"
ANONYMOUS_USER_KEY = "anonymous_user_id"
DOCUMENTS_PREFIX = "documents:"


def documents_key(collection_path: str) -> str:
    return f"{DOCUMENTS_PREFIX}{collection_path}"


class LocalCacheStore:
    """Durable key/value cache backed by a single JSON file.

    Values must be JSON-serializable. Every public call re-reads the file so
    that separate store instances pointed at the same path agree; the last
    write wins.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except json.JSONDecodeError:
            logger.exception("Local cache at %s is corrupt; starting empty", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Local cache at %s is not an object; starting empty", self._path)
            return {}
        return raw

    def _write_unlocked(self, entries: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(entries, handle, indent=2)
        tmp_path.replace(self._path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entries = self._load_unlocked()
        if key not in entries:
            return default
        return copy.deepcopy(entries[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            entries = self._load_unlocked()
            entries[key] = copy.deepcopy(value)
            self._write_unlocked(entries)

    def set_many(self, values: Dict[str, Any]) -> None:
        with self._lock:
            entries = self._load_unlocked()
            entries.update(copy.deepcopy(values))
            self._write_unlocked(entries)

    def delete(self, key: str) -> None:
        self.delete_many([key])

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            entries = self._load_unlocked()
            removed = [key for key in keys if entries.pop(key, None) is not None]
            if removed:
                self._write_unlocked(entries)

    def keys(self, prefix: Optional[str] = None) -> List[str]:
        with self._lock:
            entries = self._load_unlocked()
        return sorted(key for key in entries if prefix is None or key.startswith(prefix))

    def mutate(self, fn: Callable[[Dict[str, Any]], T]) -> T:
        """Apply ``fn`` to the whole entry map and persist the result in one write.

        Nothing is written when ``fn`` raises.
        """
        with self._lock:
            entries = self._load_unlocked()
            result = fn(entries)
            self._write_unlocked(entries)
            return result

    def clear(self) -> None:
        with self._lock:
            if self._path.exists():
                self._path.unlink()


__all__ = [
    "ANONYMOUS_USER_KEY",
    "CACHED_PROFILE_KEY",
    "DOCUMENTS_PREFIX",
    "LAST_SYNC_KEY",
    "LocalCacheStore",
    "documents_key",
]
