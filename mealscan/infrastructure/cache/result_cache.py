"""
Analysis result cache with TTL support.

Memoizes nutrition records for byte-identical uploads so a user who
retries the same photo does not pay for a second inference call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

import structlog

from mealscan.domain.analysis.models import NutritionRecord

logger = structlog.get_logger(__name__)


DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class CacheEntry:
    """Cached record with its creation time (clock seconds)."""

    record: NutritionRecord
    created_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at >= ttl_seconds


class ResultCache:
    """
    In-memory result cache with TTL.

    Expired entries are evicted lazily on lookup; there is no background
    sweeper. ``get`` and ``put`` each hold the lock, so a concurrent
    get/put pair may cause a duplicate inference but never a torn entry.

    Example:
        >>> cache = ResultCache(ttl_seconds=3600)
        >>> cache.put("key", record)
        >>> assert cache.get("key") is record
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache.

        Args:
            ttl_seconds: Entry lifetime (default 24h)
            clock: Time source in seconds, injectable for tests
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = Lock()

    def get(self, fingerprint: str) -> Optional[NutritionRecord]:
        """Return the cached record, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                logger.debug("Cache miss", key=fingerprint)
                return None

            if entry.is_expired(self._clock(), self.ttl_seconds):
                logger.debug("Cache expired", key=fingerprint)
                del self._entries[fingerprint]
                return None

        logger.debug("Cache hit", key=fingerprint, record_id=entry.record.id)
        return entry.record

    def put(self, fingerprint: str, record: NutritionRecord) -> None:
        """Store a record, replacing any previous entry."""
        with self._lock:
            self._entries[fingerprint] = CacheEntry(record=record, created_at=self._clock())
        logger.debug("Cached record", key=fingerprint, record_id=record.id)

    def clear(self) -> None:
        """Clear all cache entries (for testing)."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
