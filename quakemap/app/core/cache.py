"""
In-memory query cache — one entry per query identity.

Each entry records the last payload, when it was written, and whether the
last fetch succeeded. Freshness and eviction are checked explicitly by the
caller's clock rather than by a background timer:

    fresh   — succeeded less than `stale_seconds` ago; served without a fetch
    stale   — still served, but the next query re-fetches it
    evicted — not read for `gc_seconds`; dropped on the next cache access

Usage:
    from quakemap.app.core.cache import QueryCache

    cache = QueryCache(stale_seconds=300, gc_seconds=600)
    cache.set_success("seismic:current:0", payload)
    entry = cache.get("seismic:current:0")
    if entry and cache.is_fresh(entry):
        ...
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class EntryStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CacheEntry:
    key: str
    status: EntryStatus
    data: Any = None
    error: Optional[str] = None
    updated_at: float = 0.0
    last_accessed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status.value,
            "error": self.error,
            "updated_at": self.updated_at,
            "last_accessed": self.last_accessed,
        }


class QueryCache:
    """Key → CacheEntry mapping with manual freshness / eviction checks."""

    def __init__(
        self,
        stale_seconds: float = 300.0,
        gc_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_seconds = stale_seconds
        self.gc_seconds = gc_seconds
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for `key` (touching it), or None on miss."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_accessed = self.clock()
        return entry

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Like get() but does not count as a read."""
        return self._entries.get(key)

    def is_fresh(self, entry: CacheEntry) -> bool:
        if entry.status is not EntryStatus.SUCCESS:
            return False
        return (self.clock() - entry.updated_at) < self.stale_seconds

    def set_success(self, key: str, data: Any) -> CacheEntry:
        now = self.clock()
        entry = CacheEntry(
            key=key,
            status=EntryStatus.SUCCESS,
            data=data,
            updated_at=now,
            last_accessed=now,
        )
        self._entries[key] = entry
        return entry

    def set_error(self, key: str, error: str) -> CacheEntry:
        """
        Record a failed fetch.

        A previous successful payload for the same key is kept on the entry
        so a refetch failure does not wipe data that was already shown.
        """
        now = self.clock()
        previous = self._entries.get(key)
        entry = CacheEntry(
            key=key,
            status=EntryStatus.ERROR,
            data=previous.data if previous is not None else None,
            error=error,
            updated_at=previous.updated_at if previous is not None else now,
            last_accessed=now,
        )
        self._entries[key] = entry
        return entry

    def collect_garbage(self, keep: Iterable[str] = ()) -> int:
        """Drop entries idle for longer than gc_seconds. Returns count dropped."""
        now = self.clock()
        protected = set(keep)
        expired = [
            key for key, entry in self._entries.items()
            if key not in protected and now - entry.last_accessed >= self.gc_seconds
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d idle cache entries", len(expired))
        return len(expired)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> Dict[str, Any]:
        now = self.clock()
        fresh = sum(1 for e in self._entries.values() if self.is_fresh(e))
        errors = sum(1 for e in self._entries.values() if e.status is EntryStatus.ERROR)
        return {
            "entries": len(self._entries),
            "fresh": fresh,
            "stale": len(self._entries) - fresh - errors,
            "errors": errors,
            "oldest_age_seconds": round(
                max((now - e.updated_at for e in self._entries.values()), default=0.0), 1
            ),
        }
