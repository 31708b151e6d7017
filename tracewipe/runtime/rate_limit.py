"""In-memory rate limiter (per-process token bucket)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.clock import Clock, SystemClock


@dataclass
class Bucket:
    tokens: float
    last_refill_ms: int


class TokenBucketLimiter:
    """
    Bucket refilled completely once a full window has elapsed.

    The refill size is whatever per-minute cap the caller asks for at that
    moment, so the tightest rule among the current matches wins. The
    check-and-decrement in :meth:`acquire` never awaits.
    """

    def __init__(self, capacity: int, *, window_ms: int = 60000, clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self.default_capacity = capacity
        self.window_ms = window_ms
        self._bucket = Bucket(tokens=float(capacity), last_refill_ms=self.clock.now_ms())

    @property
    def tokens(self) -> float:
        return self._bucket.tokens

    def acquire(self, max_per_window: Optional[float] = None) -> bool:
        now = self.clock.now_ms()
        bucket = self._bucket
        if now - bucket.last_refill_ms >= self.window_ms:
            bucket.tokens = float(max_per_window or self.default_capacity)
            bucket.last_refill_ms = now
        if bucket.tokens > 0:
            bucket.tokens -= 1
            return True
        return False
