"""
Expiring key/value store - process-local LRU with per-entry TTL.

Used for short-lived data that must disappear on its own: resolved
permission sets and temporary secrets (e.g. a pending 2FA enrollment
secret). Time comes from an injected clock so expiry is testable
without sleeping.

Usage:
    store = ExpiringStore(maxsize=1000)
    store.put("pending:42", secret, ttl=600)
    store.get("pending:42")
    store.sweep()  # drop everything already expired
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Tuple

Clock = Callable[[], float]

_MISSING = object()


@dataclass
class StoreEntry:
    value: Any
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class ExpiringStore:
    """
    Thread-safe LRU store with TTL expiration.

    Expired entries are never returned; they are removed lazily on access
    and eagerly by sweep().
    """

    def __init__(
        self,
        maxsize: int = 1000,
        default_ttl: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, StoreEntry]" = OrderedDict()
        self._lock = threading.RLock()

    def put(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Entry key
            value: Value to store
            ttl: Seconds until expiry; None uses default_ttl (None = no expiry).
                A ttl <= 0 stores nothing and drops any existing entry.
        """
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            if ttl is not None and ttl <= 0:
                self._entries.pop(key, None)
                return

            expires_at = None if ttl is None else self._clock() + ttl
            self._entries[key] = StoreEntry(value=value, expires_at=expires_at)
            self._entries.move_to_end(key)

            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Get a live value, refreshing its LRU position."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return entry.value

    def pop(self, key: Hashable, default: Any = None) -> Any:
        """Remove and return a live value (consume-once secrets)."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None or entry.is_expired(self._clock()):
                return default
            return entry.value

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[Hashable, Any], bool]) -> int:
        """Remove every entry whose (key, value) matches predicate."""
        with self._lock:
            doomed = [k for k, e in self._entries.items() if predicate(k, e.value)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def sweep(self) -> int:
        """Remove expired entries. Returns number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def items(self) -> List[Tuple[Hashable, Any]]:
        """Snapshot of live (key, value) pairs."""
        with self._lock:
            now = self._clock()
            return [(k, e.value) for k, e in self._entries.items() if not e.is_expired(now)]

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[Hashable]:
        return iter([k for k, _ in self.items()])

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "maxsize": self.maxsize,
                "default_ttl": self.default_ttl,
            }
