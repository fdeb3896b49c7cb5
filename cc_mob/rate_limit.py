"""
Rolling-window rate limiting keyed by source address.

Used for the general API limit, the stricter creation limit and the
real-time connection-attempt limit.
"""

import math
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable, Deque


MAX_TRACKED_SOURCES = 10_000


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0  # seconds until the oldest hit leaves the window


class SlidingWindowLimiter:
    """Allow at most `limit` hits per `window` seconds per source."""

    def __init__(
        self,
        limit: int,
        window: float = 60,
        max_sources: int = MAX_TRACKED_SOURCES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window = window
        self.max_sources = max_sources
        self._clock = clock
        self._hits: "OrderedDict[str, Deque[float]]" = OrderedDict()
        self._lock = threading.Lock()

    def hit(self, source: str) -> RateDecision:
        """Record an attempt from `source`. Rejected attempts are not counted."""
        now = self._clock()
        with self._lock:
            hits = self._hits.get(source)
            if hits is None:
                hits = deque()
                self._hits[source] = hits
                # Least recently seen sources go first once the cap is reached
                while len(self._hits) > self.max_sources:
                    self._hits.popitem(last=False)
            else:
                self._hits.move_to_end(source)

            while hits and now - hits[0] >= self.window:
                hits.popleft()

            if len(hits) >= self.limit:
                elapsed = now - hits[0] if hits else 0
                retry_after = max(1, math.ceil(self.window - elapsed))
                return RateDecision(allowed=False, retry_after=retry_after)

            hits.append(now)
            return RateDecision(allowed=True)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def tracked_sources(self) -> int:
        return len(self._hits)
