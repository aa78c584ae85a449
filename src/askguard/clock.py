"""Time sources for token expiry and quota windows."""

import time
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

# Provider quotas reset at midnight Pacific Time
QUOTA_TIMEZONE = 'America/Los_Angeles'


class Clock(Protocol):
    def now_ms(self) -> int: ...

    def today(self) -> str: ...


class SystemClock:
    """Wall clock in epoch milliseconds plus the calendar date in a reference timezone."""

    def __init__(self, timezone: str = QUOTA_TIMEZONE):
        self.timezone = ZoneInfo(timezone)

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def today(self) -> str:
        """Current date as YYYY-MM-DD in the reference timezone."""
        return datetime.now(self.timezone).date().isoformat()


class ManualClock:
    """Clock that only moves when told to.

    Used by tests and dry runs to step through expiry buffers and quota windows.

    Example:
        >>> clock = ManualClock(now_ms=0, today='2024-01-01')
        >>> clock.advance(61_000)
        >>> clock.now_ms()
        61000
    """

    def __init__(self, now_ms: int = 0, today: str = '2024-01-01'):
        self._now_ms = now_ms
        self._today = today

    def now_ms(self) -> int:
        return self._now_ms

    def today(self) -> str:
        return self._today

    def advance(self, ms: int) -> None:
        self._now_ms += ms

    def set_date(self, today: str) -> None:
        self._today = today
