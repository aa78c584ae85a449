"""
Background scheduling for token keep-alive and session liveness.

Two named periodic ticks drive the token manager independently of user
actions. Ticks are scheduled against wall-clock due times, so a process that
was suspended for hours fires each overdue tick once on wake instead of once
per missed interval.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from .auth.service import TokenManager
from .clock import Clock, SystemClock
from .config import GuardConfig
from .errors import NotAuthenticatedError, RefreshFailedError
from .notifications import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)

REFRESH_ALARM = 'token-refresh'
LIVENESS_ALARM = 'session-liveness'

TickCallback = Callable[[], Awaitable[object]]


@dataclass
class Alarm:
    """A named periodic callback and the wall-clock time it is next due."""

    name: str
    interval_ms: int
    callback: TickCallback
    next_due_ms: int

    def is_due(self, now_ms: int) -> bool:
        return now_ms >= self.next_due_ms


class TimerRegistry(ABC):
    """Registers named periodic callbacks. Re-registering a name replaces it."""

    @abstractmethod
    def register(self, name: str, interval_minutes: float, callback: TickCallback) -> None:
        pass

    @abstractmethod
    def cancel(self, name: str) -> None:
        pass


class AsyncioTimers(TimerRegistry):
    """Timer registry driven by a polling task on the running event loop.

    Args:
        clock: Wall-clock source used for due times
        poll_seconds: How often to look for due alarms
    """

    def __init__(self, clock: Optional[Clock] = None, poll_seconds: float = 1.0):
        self.clock = clock or SystemClock()
        self.poll_seconds = poll_seconds
        self.alarms: Dict[str, Alarm] = {}
        self._task: Optional[asyncio.Task] = None

    def register(self, name: str, interval_minutes: float, callback: TickCallback) -> None:
        interval_ms = int(interval_minutes * 60 * 1000)
        if interval_ms <= 0:
            raise ValueError(f'Interval for {name} must be positive')
        self.alarms[name] = Alarm(name, interval_ms, callback, self.clock.now_ms() + interval_ms)
        logger.debug(f'Registered alarm {name} every {interval_minutes} min')

    def cancel(self, name: str) -> None:
        self.alarms.pop(name, None)

    async def fire_due(self) -> List[str]:
        """Run every alarm that is due, at most once each.

        Returns:
            Names of the alarms that fired
        """
        now_ms = self.clock.now_ms()
        fired = []
        for alarm in list(self.alarms.values()):
            if not alarm.is_due(now_ms):
                continue
            # Reschedule from now, not from the missed due time, so missed intervals collapse into one
            alarm.next_due_ms = now_ms + alarm.interval_ms
            fired.append(alarm.name)
            try:
                await alarm.callback()
            except Exception:
                logger.exception(f'Alarm {alarm.name} failed; it will run again at its next interval')
        return fired

    async def run(self) -> None:
        while True:
            await self.fire_due()
            await asyncio.sleep(self.poll_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class TickOutcome(str, Enum):
    REFRESHED = 'refreshed'
    SKIPPED = 'skipped'
    TRANSIENT_FAILURE = 'transient_failure'
    FATAL_FAILURE = 'fatal_failure'


class BackgroundScheduler:
    """Keeps the session alive and tells the user when it is gone.

    - Refresh tick: refreshes the token whenever a session exists. A rejected
      refresh token raises a re-login notification; transient failures are only
      logged and retried on the next tick.
    - Liveness tick: checks for a valid session without any network call and
      notifies when the user is logged out.

    The logged-out notification is shown once per transition, not on every tick.
    """

    NOTIFICATION_TITLE = 'askguard'

    def __init__(
        self,
        tokens: TokenManager,
        timers: TimerRegistry,
        notifier: Optional[Notifier] = None,
        config: Optional[GuardConfig] = None,
    ):
        self.tokens = tokens
        self.timers = timers
        self.notifier = notifier or LoggingNotifier()
        self.config = config or tokens.config
        self._logged_out_notified = False

    def start(self) -> None:
        self.timers.register(REFRESH_ALARM, self.config.refresh_interval_minutes, self.refresh_tick)
        self.timers.register(LIVENESS_ALARM, self.config.liveness_interval_minutes, self.liveness_tick)
        logger.info(
            f'Background scheduler started (refresh every {self.config.refresh_interval_minutes} min, '
            f'liveness every {self.config.liveness_interval_minutes} min)'
        )

    def stop(self) -> None:
        self.timers.cancel(REFRESH_ALARM)
        self.timers.cancel(LIVENESS_ALARM)
        logger.info('Background scheduler stopped')

    async def refresh_tick(self) -> TickOutcome:
        if await self.tokens.load_session() is None:
            logger.debug('Refresh tick: no session, skipping')
            return TickOutcome.SKIPPED

        try:
            await self.tokens.refresh()
        except RefreshFailedError as e:
            if e.fatal:
                logger.warning(f'Refresh tick: refresh token rejected: {e}')
                self._notify_logged_out(e.message)
                return TickOutcome.FATAL_FAILURE
            logger.warning(f'Refresh tick: transient failure, retrying next tick: {e}')
            return TickOutcome.TRANSIENT_FAILURE
        except NotAuthenticatedError:
            logger.debug('Refresh tick: session ended before refresh, skipping')
            return TickOutcome.SKIPPED

        self._logged_out_notified = False
        logger.debug('Refresh tick: token refreshed')
        return TickOutcome.REFRESHED

    async def liveness_tick(self) -> bool:
        if await self.tokens.has_valid_session():
            self._logged_out_notified = False
            return True

        logger.info('Liveness tick: not authenticated')
        self._notify_logged_out('You are not logged in. Please log in to continue.')
        return False

    def _notify_logged_out(self, message: str) -> None:
        if self._logged_out_notified:
            return
        self._logged_out_notified = True
        self.notifier.notify(self.NOTIFICATION_TITLE, message)
