from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Tuple


class MemoryCache:
    """In-process stand-in for RedisCache used in tests and local fallback mode.

    Keys expire lazily: an expired entry is dropped the next time it is touched.
    Values are not shared between processes, so this is only suitable for a
    single worker.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[str, float]] = {}

    def verify_connection(self) -> None:
        return None

    def _live_entry(self, key: str) -> Optional[Tuple[str, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live_entry(key)
            return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + max(1, int(ttl_seconds)))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            self._entries[key] = (entry[0], self._clock() + max(1, int(ttl_seconds)))
            return True

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when it is absent."""
        with self._lock:
            entry = self._live_entry(key)
            return entry[1] - self._clock() if entry else None

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["MemoryCache"]
