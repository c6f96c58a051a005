"""
In-Memory KV Store
Fallback for development/testing. Data is lost on restart.
"""

import json
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core import Clock, SystemClock


CLEANUP_INTERVAL_SEC = 60


@dataclass
class _Entry:
    payload: str
    expires_at: Optional[float] = None


class MemoryKVStore:
    """
    Dict-backed store with lazy TTL expiry.

    A single lock serializes every operation, so set_if_absent and
    increment_counter are atomic within the process.
    """

    backend = "memory"

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._data: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._last_cleanup = self._ts()

    def _ts(self) -> float:
        return self._clock.now().timestamp()

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._ts() + ttl_seconds if ttl_seconds else None

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._ts() >= entry.expires_at:
            del self._data[key]
            return None
        return entry

    def _maybe_cleanup(self) -> None:
        now = self._ts()
        if now - self._last_cleanup < CLEANUP_INTERVAL_SEC:
            return
        expired = [
            k for k, e in self._data.items()
            if e.expires_at is not None and now >= e.expires_at
        ]
        for k in expired:
            del self._data[k]
        self._last_cleanup = now

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            self._maybe_cleanup()
            entry = self._live(key)
            return json.loads(entry.payload) if entry else None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        payload = json.dumps(value)
        with self._lock:
            self._data[key] = _Entry(payload, self._expiry(ttl_seconds))

    def set_if_absent(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        payload = json.dumps(value)
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = _Entry(payload, self._expiry(ttl_seconds))
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def increment_counter(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        with self._lock:
            entry = self._live(key)
            value = int(json.loads(entry.payload) or 0) + 1 if entry else 1
            self._data[key] = _Entry(json.dumps(value), self._expiry(ttl_seconds))
            return value

    def list_by_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        with self._lock:
            self._maybe_cleanup()
            results = []
            for k in sorted(self._data):
                if not k.startswith(prefix):
                    continue
                entry = self._live(k)
                if entry is not None:
                    results.append((k, json.loads(entry.payload)))
            return results

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._data)
