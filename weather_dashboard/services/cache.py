"""In-memory TTL caching service."""

import time
from typing import Any, Callable

from prometheus_client import Counter

from weather_dashboard.core.config import settings
from weather_dashboard.core.logging import get_logger

logger = get_logger(__name__)

CACHE_HITS = Counter("weather_dashboard_cache_hits_total", "Total number of cache hits")
CACHE_MISSES = Counter("weather_dashboard_cache_misses_total", "Total number of cache misses")


class CacheService:
    """Fingerprint-keyed payload cache with a fixed time-to-live.

    Expired entries are not evicted; they are simply treated as absent
    until a fresh ``set`` supersedes them.
    """

    def __init__(
        self,
        ttl: float | None = None,
        enabled: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache service.

        Args:
            ttl: Entry lifetime in seconds, defaults to ``settings.cache_ttl``
            enabled: Caching feature flag, defaults to ``settings.caching_enabled``
            clock: Monotonic time source in seconds
        """
        self.ttl = settings.cache_ttl if ttl is None else ttl
        self.enabled = settings.caching_enabled if enabled is None else enabled
        self._clock = clock
        self._store: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached payload, or None if missing, expired or caching is disabled
        """
        if not self.enabled:
            return None

        entry = self._store.get(key)
        if entry is not None:
            payload, stored_at = entry
            if self._clock() - stored_at < self.ttl:
                logger.debug("cache_hit", key=key)
                CACHE_HITS.inc()
                return payload

        logger.debug("cache_miss", key=key)
        CACHE_MISSES.inc()
        return None

    def set(self, key: str, value: Any) -> None:
        """Store a payload, superseding any previous entry for the key."""
        if not self.enabled:
            return
        self._store[key] = (value, self._clock())
        logger.debug("cache_set", key=key, ttl=self.ttl)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
