"""Time-bounded cache for the managed-plugin list."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 180.0


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its expiration time on the cache's clock."""

    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ManagedPluginCache(Generic[T]):
    """Get-or-compute cache with a fixed TTL.

    The cache is never invalidated by writes elsewhere; a stale value may be
    served until the TTL passes or :meth:`invalidate` is called.

    Usage:
        cache = ManagedPluginCache(ttl_seconds=180)
        plugins = cache.get_or_compute(store.load_all)
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: CacheEntry[T] | None = None
        self._lock = Lock()

    def get_or_compute(self, compute: Callable[[], T]) -> T:
        with self._lock:
            now = self._clock()
            if self._entry is not None and not self._entry.is_expired(now):
                return self._entry.value
            value = compute()
            self._entry = CacheEntry(value=value, expires_at=now + self.ttl_seconds)
            logger.debug(f"Managed plugin cache refreshed (ttl={self.ttl_seconds}s)")
            return value

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None
