"""Time-bounded marker set for in-flight writes.

A key added to the set is visible immediately and becomes logically absent
once the TTL elapses, even if it is never removed. The orchestrator marks a
record while its payload is being written so that concurrent reads skip the
payload fetch; a crashed writer leaves a marker that self-expires.

Uses monotonic time. Thread-safe for concurrent access within a single process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_MARKER_TTL_SECONDS: Final[float] = 30.0


class ExpiringMarkerSet:
    """Set of opaque keys whose entries expire after a fixed TTL.

    Expiry is checked lazily on access; ``sweep()`` purges expired entries
    eagerly and can be called from a periodic task.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_MARKER_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the marker set.

        Args:
            ttl: Seconds after which an added key is considered absent.
            clock: Monotonic clock returning seconds (injectable for tests).

        Raises:
            ValueError: If ttl is not positive.
        """
        if ttl <= 0:
            raise ValueError(f"Marker TTL must be positive, got {ttl}")
        self._ttl = ttl
        self._clock = clock
        self._deadlines: dict[Hashable, float] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def ttl(self) -> float:
        """Seconds a marker stays visible."""
        return self._ttl

    def add(self, key: Hashable) -> None:
        """Mark ``key``; re-adding an existing key restarts its TTL."""
        with self._lock:
            if self._closed:
                logger.debug("Ignoring marker add after shutdown: %s", key)
                return
            self._deadlines[key] = self._clock() + self._ttl

    def remove(self, key: Hashable) -> None:
        """Unmark ``key``. Missing keys are ignored."""
        with self._lock:
            self._deadlines.pop(key, None)

    def contains(self, key: Hashable) -> bool:
        """Return True if ``key`` is marked and its TTL has not elapsed."""
        with self._lock:
            deadline = self._deadlines.get(key)
            if deadline is None:
                return False
            if self._clock() >= deadline:
                del self._deadlines[key]
                return False
            return True

    def sweep(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, deadline in self._deadlines.items() if now >= deadline]
            for key in expired:
                del self._deadlines[key]

        if expired:
            logger.debug("Swept %d expired markers", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Remove all markers."""
        with self._lock:
            self._deadlines.clear()

    def shutdown(self) -> None:
        """Clear the set and stop accepting new markers."""
        with self._lock:
            self._deadlines.clear()
            self._closed = True

    def __contains__(self, key: object) -> bool:
        return isinstance(key, Hashable) and self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for deadline in self._deadlines.values() if now < deadline)
