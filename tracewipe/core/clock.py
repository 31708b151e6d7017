"""Wall-clock helpers. Timestamps are epoch milliseconds throughout."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Clock backed by ``time.time``."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)
