from __future__ import annotations

import time
from typing import Protocol


MILLIS_PER_HOUR = 3_600_000
MILLIS_PER_DAY = 86_400_000


class Clock(Protocol):
    def now_millis(self) -> int: ...


class SystemClock:
    """Wall-clock time in epoch milliseconds (UTC)."""

    def now_millis(self) -> int:
        return time.time_ns() // 1_000_000
