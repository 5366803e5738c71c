"""Sliding-window request limiter, one window per client address.

A client whose window has emptied is forgotten, either on its next request
or by `purge()` from the periodic sweep job.
"""

import logging
import threading
import time
from collections import deque

from app.config import settings

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    def __init__(self, max_requests: int, window_seconds: float, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        """Record a request for key. False when the window is already full."""
        with self._lock:
            hits = self._trim(key)
            if len(hits) >= self.max_requests:
                return False
            hits.append(self._clock())
            self._hits[key] = hits
            return True

    def remaining(self, key: str) -> int:
        with self._lock:
            return max(0, self.max_requests - len(self._trim(key)))

    def purge(self) -> int:
        """Forget every client with no request inside the window. Returns how many."""
        with self._lock:
            before = len(self._hits)
            for key in list(self._hits):
                self._trim(key)
            removed = before - len(self._hits)
        if removed:
            logger.info("Rate limiter forgot %d idle clients", removed)
        return removed

    def reset(self):
        with self._lock:
            self._hits.clear()

    def _trim(self, key: str) -> deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        cutoff = self._clock() - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits


limiter = SlidingWindowLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
)
