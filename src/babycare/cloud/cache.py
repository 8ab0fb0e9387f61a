"""
In-process cache for cloud analysis results.

Entries expire individually (1h for analyses, 30min for predictions by
default) and the cache never holds more than `max_entries`; the least
recently used entry goes first. A periodic sweep (see scheduler.jobs)
drops expired entries that nobody has asked for again.
"""
import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, NamedTuple, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    subject_id: str
    kind: str      # "sleep", "routine", "prediction"
    start: str     # ISO date or datetime
    end: str


class CacheStore(Protocol):
    def get(self, key: CacheKey) -> Optional[Any]:
        ...

    def put(self, key: CacheKey, value: Any, ttl: timedelta,
            expires_at: Optional[datetime] = None) -> None:
        ...

    def invalidate(self, key: CacheKey) -> None:
        ...

    def clear(self) -> None:
        ...

    def sweep(self) -> int:
        ...


class TTLCache:
    """Thread-safe TTL + LRU cache. Use one instance per process."""

    def __init__(self, max_entries: int = 256, clock: Callable[[], datetime] = datetime.now):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, Tuple[Any, datetime]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def put(self, key: CacheKey, value: Any, ttl: timedelta,
            expires_at: Optional[datetime] = None) -> None:
        """
        Store a value for `ttl`, or until `expires_at` if that comes first.
        """
        deadline = self._clock() + ttl
        if expires_at is not None:
            deadline = min(deadline, expires_at)
        with self._lock:
            self._entries[key] = (value, deadline)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from cloud cache", evicted)

    def invalidate(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)
