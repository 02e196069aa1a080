"""In-process TTL cache for the expensive, forum-wide documents."""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: datetime | None


class CacheStore:
    """Thread-safe key/value store with per-entry expiry.

    The lock only covers dict access. `fetch` runs its builder outside the
    lock, so concurrent misses on one key may each build; the last write wins.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def read(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at is not None and entry.expires_at <= now:
                del self._entries[key]
                return None
            return entry.value

    def write(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        """Store value; with no ttl the entry lives until invalidated."""
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def fetch(self, key: str, ttl: timedelta, builder: Callable[[], Any]) -> Any:
        value = self.read(key)
        if value is not None:
            return value
        logger.debug("Cache miss for %s, building", key)
        value = builder()
        self.write(key, value, ttl)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_all(self, keys) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.read(key) is not None
