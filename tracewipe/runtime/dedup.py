"""Bounded cache of recently processed URLs."""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from ..core.clock import Clock, SystemClock


class RecentUrlCache:
    """LRU map of url -> last processed time, capped at ``max_entries``."""

    def __init__(self, window_ms: int, max_entries: int = 500, clock: Optional[Clock] = None) -> None:
        self.window_ms = window_ms
        self.max_entries = max(1, int(max_entries))
        self.clock = clock or SystemClock()
        self._seen: "OrderedDict[str, int]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def was_recently_processed(self, url: str) -> bool:
        ts = self._seen.get(url)
        return ts is not None and self.clock.now_ms() - ts < self.window_ms

    def mark_processed(self, url: str) -> None:
        self._seen[url] = self.clock.now_ms()
        self._seen.move_to_end(url)
        while len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)
