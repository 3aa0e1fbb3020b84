"""Short-lived read-through cache for jail status.

Status queries go through sudo and fail2ban-client; the dashboard and any
other poller share one cache so concurrent refreshes within the TTL reuse
the same snapshot instead of hitting the control socket again.
"""

import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from const import DEFAULT_STATUS_CACHE_TTL

T = TypeVar("T")


class StatusCache(Generic[T]):
    """Thread-safe single-value cache with a TTL."""

    def __init__(self, ttl: float = DEFAULT_STATUS_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._timestamp: float = 0.0
        self._valid = False

    def get(self, loader: Callable[[], T]) -> T:
        """Return the cached value, calling ``loader`` if it is missing or stale.

        The lock is held while loading so concurrent callers wait for one
        load instead of each running their own. Loader exceptions propagate
        and leave the cache empty.
        """
        with self._lock:
            now = self._clock()
            if self._valid and (now - self._timestamp) < self.ttl:
                return self._value  # type: ignore

            value = loader()
            self._value = value
            self._timestamp = self._clock()
            self._valid = True
            return value

    def invalidate(self) -> None:
        """Force the next get() to reload (call after every mutation)."""
        with self._lock:
            self._value = None
            self._timestamp = 0.0
            self._valid = False
