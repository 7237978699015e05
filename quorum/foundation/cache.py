"""
RESPONSE CACHE - Fingerprinted, bounded response cache

One cache per model identity. Keys are request fingerprints; values are
Responses plus the time they were stored.

Eviction knobs (CacheConfig):
- max_size:    bounded size; expired entries go first, then the oldest
- ttl_seconds: bounded age; stale entries are dropped on lookup
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import copy
import hashlib
import json
import logging
import os
import threading
import time

from quorum.foundation.models import Request, Response
from quorum.foundation.types import NONE, Option, Some

logger = logging.getLogger(__name__)


def fingerprint(request: Request) -> str:
    """
    Deterministic digest of a normalized request.

    Text fields are serialized with sorted keys; a binary payload is hashed
    on its own and only its digest enters the key.
    """
    normalized: Dict[str, Any] = {
        "text": request.text,
        "operation": request.operation,
        "context": request.context or {},
        "stream": request.stream,
    }
    content = json.dumps(normalized, sort_keys=True, default=str)
    if request.payload is not None:
        content += ":" + hashlib.sha256(request.payload).hexdigest()
    return hashlib.sha256(content.encode()).hexdigest()[:32]


@dataclass
class CacheConfig:
    """Configuration for the response cache."""
    enabled: bool = True
    max_size: int = 1000
    ttl_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> CacheConfig:
        return cls(
            enabled=os.getenv("QUORUM_CACHE_ENABLED", "true").lower() == "true",
            max_size=int(os.getenv("QUORUM_CACHE_MAX_SIZE", "1000")),
            ttl_seconds=float(os.getenv("QUORUM_CACHE_TTL", "300")),
        )


@dataclass
class CacheEntry:
    """Entry in the response cache."""
    response: Response
    stored_at: float
    hit_count: int = 0


class ResponseCache:
    """
    Thread-safe response cache.

    Lookups return deep copies so a cached Response is never mutated by
    a caller. Store overwrites any previous entry (last writer wins).
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

        # Stats
        self.hits = 0
        self.misses = 0

    def _is_expired(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.stored_at) > self.config.ttl_seconds

    def lookup(self, key: str) -> Option[Response]:
        """Get a copy of the cached response, if present and fresh."""
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self.misses += 1
                return NONE

            if self._is_expired(entry):
                del self._entries[key]
                self.misses += 1
                return NONE

            entry.hit_count += 1
            self.hits += 1
            return Some(copy.deepcopy(entry.response))

    def store(self, key: str, response: Response) -> None:
        """Cache a response under `key` with a fresh timestamp."""
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.config.max_size:
                self._evict()

            self._entries[key] = CacheEntry(
                response=copy.deepcopy(response),
                stored_at=self._clock(),
            )

    def _evict(self) -> None:
        """Drop expired entries, then the oldest until there is room."""
        expired = [k for k, v in self._entries.items() if self._is_expired(v)]
        for k in expired:
            del self._entries[k]

        if len(self._entries) >= self.config.max_size:
            by_age = sorted(self._entries.items(), key=lambda item: item[1].stored_at)
            overflow = len(self._entries) - self.config.max_size + 1
            for k, _ in by_age[:overflow]:
                del self._entries[k]
            logger.debug(f"Evicted {overflow} cache entries")

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self.hits + self.misses
            expired = sum(1 for v in self._entries.values() if self._is_expired(v))
            return {
                "size": len(self._entries),
                "max_size": self.config.max_size,
                "ttl_seconds": self.config.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / total if total > 0 else 0.0,
                "expired_entries": expired,
            }
