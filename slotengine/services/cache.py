"""
In-memory cache for computed availability.

Keys are built by the service from every input that affects the result
(profile, dates, zones, slot rules, a digest of the fetched data and the
current minute), so a stale entry can only be served for the remainder of
the minute it was computed in.
"""

import logging
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)


class AvailabilityCache:
    """
    Small TTL cache with a bounded number of entries.

    Args:
        ttl_seconds: How long an entry stays valid
        max_entries: Oldest entries are evicted beyond this size
        timer: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 512,
        timer: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._timer = timer
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self._timer() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None

        logger.debug("Cache hit for %s", key[:2] if isinstance(key, tuple) else key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict()
        self._entries[key] = (self._timer(), value)

    def clear(self) -> None:
        """Clear all cached data."""
        self._entries.clear()
        logger.debug("Availability cache cleared")

    def invalidate_profile(self, profile_id: str) -> int:
        """
        Drop every entry computed for ``profile_id``, e.g. after a booking.

        Returns:
            Number of entries removed
        """
        stale = [
            key for key in self._entries
            if isinstance(key, tuple) and len(key) > 1 and key[1] == profile_id
        ]
        for key in stale:
            del self._entries[key]

        logger.debug("Cleared %d cached entries for profile %s", len(stale), profile_id)
        return len(stale)

    def _evict(self) -> None:
        """Remove expired entries, then the oldest one if still full."""
        now = self._timer()
        for key in [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]:
            del self._entries[key]

        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
