"""
Sliding-window request counter.

Limiters are plain objects owned by whoever serves requests (one per app
process, one per test); call ``reset()`` to clear them.
"""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Mapping

MAX_TRACKED_KEYS = 5000


@dataclass(frozen=True)
class RateLimitResult:
    ok: bool
    retry_after: int | None = None


class SlidingWindowLimiter:
    def __init__(
        self,
        window_seconds: float,
        max_hits: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0 or max_hits <= 0:
            raise ValueError("window_seconds and max_hits must be positive")
        self.window_seconds = window_seconds
        self.max_hits = max_hits
        self.clock = clock
        self._hits: dict[str, deque[float]] = {}

    def _prune(self, hits: deque[float], now: float) -> None:
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

    def _evict_idle(self, now: float) -> None:
        for key in list(self._hits):
            self._prune(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]
            if len(self._hits) <= MAX_TRACKED_KEYS:
                break

    def hit(self, key: str) -> RateLimitResult:
        now = self.clock()
        if len(self._hits) > MAX_TRACKED_KEYS:
            self._evict_idle(now)

        hits = self._hits.setdefault(key, deque())
        self._prune(hits, now)
        if len(hits) >= self.max_hits:
            retry_after = math.ceil(hits[0] + self.window_seconds - now)
            return RateLimitResult(ok=False, retry_after=max(retry_after, 1))
        hits.append(now)
        return RateLimitResult(ok=True)

    def reset(self) -> None:
        self._hits.clear()


def client_key(headers: Mapping[str, str]) -> str:
    lowered = {str(name).lower(): value for name, value in headers.items()}
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    for name in ("x-real-ip", "fly-client-ip"):
        if lowered.get(name):
            return lowered[name]
    return "unknown"
