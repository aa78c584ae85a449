"""Quota governor: the stateful front for the usage window.

Advisory only. The provider enforces the real limits; this gives fast,
offline feedback so requests that would certainly be rejected are never sent.
Concurrent read-modify-write of the window is last-write-wins, which is
acceptable for an approximate counter.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from ..clock import Clock, SystemClock
from ..metrics import GuardMetrics, get_metrics
from ..storage import USAGE_WINDOW_KEY, ScopedStorage
from . import window as usage
from .limits import get_limits, normalize_tier
from .models import AdmissionDecision, ToolsUsed, UsageSummary, UsageWindow

logger = logging.getLogger(__name__)


class QuotaGovernor:
    """Admission control and usage accounting against the stored UsageWindow.

    Example:
        >>> governor = QuotaGovernor(InMemoryStorage())
        >>> decision = await governor.check_admission('free', 'gemini-2.5-flash', estimated_tokens=120)
        >>> if decision.allowed:
        ...     ...  # send the request
        ...     await governor.record_usage(actual_tokens=480)
    """

    def __init__(
        self, storage: ScopedStorage, clock: Optional[Clock] = None, metrics: Optional[GuardMetrics] = None
    ):
        self.storage = storage
        self.clock = clock or SystemClock()
        self.metrics = metrics or get_metrics()

    async def load_window(self) -> UsageWindow:
        """Load the stored window, rolled over to the current time.

        A missing or unreadable window is replaced by a fresh one. The window is
        written back only when a rollover changed it.
        """
        now_ms = self.clock.now_ms()
        today = self.clock.today()

        data = await self.storage.get(USAGE_WINDOW_KEY)
        stored = None
        if data:
            try:
                stored = UsageWindow.model_validate(data)
            except ValidationError as e:
                logger.warning(f'Stored usage window is invalid, starting a new one: {e}')

        if stored is None:
            fresh = UsageWindow.fresh(now_ms, today)
            await self._save(fresh)
            return fresh

        current = usage.rollover_if_needed(stored, now_ms, today)
        if current is not stored:
            logger.debug('Usage window rolled over')
            await self._save(current)
        return current

    async def _save(self, window: UsageWindow) -> None:
        await self.storage.set(USAGE_WINDOW_KEY, window.model_dump(mode='json'))

    async def check_admission(self, tier: str, model: str, estimated_tokens: int = 0) -> AdmissionDecision:
        """Check whether a request of roughly estimated_tokens may be sent now."""
        window = await self.load_window()
        decision = usage.check_admission(tier, model, window, estimated_tokens)

        self.metrics.admission_decisions.labels(
            tier=normalize_tier(tier),
            model=model,
            decision='allowed' if decision.allowed else 'denied',
            reason=decision.reason or '',
        ).inc()
        logger.debug(
            f'Admission check {normalize_tier(tier)}/{model} (~{estimated_tokens} tokens): '
            f'{"allowed" if decision.allowed else decision.reason}'
        )
        return decision

    async def record_usage(self, actual_tokens: int, tools_used: Optional[ToolsUsed] = None) -> UsageWindow:
        """Account a counted request. Never call this for denied requests."""
        window = await self.load_window()
        updated = usage.record_usage(window, actual_tokens, self.clock.now_ms(), self.clock.today(), tools_used)
        await self._save(updated)

        self.metrics.tokens_recorded.inc(max(0, actual_tokens))
        logger.debug(
            f'Recorded {actual_tokens} tokens: {updated.requestsThisMinute} requests this minute, '
            f'{updated.requestsToday} today'
        )
        return updated

    async def usage_summary(self, tier: str, model: str) -> UsageSummary:
        """Current counters alongside the limits for tier and model."""
        window = await self.load_window()
        return UsageSummary(tier=normalize_tier(tier), model=model, limits=get_limits(tier, model), window=window)

    async def reset(self) -> UsageWindow:
        """Discard all counters and start a fresh window."""
        fresh = UsageWindow.fresh(self.clock.now_ms(), self.clock.today())
        await self._save(fresh)
        logger.info('Usage window reset')
        return fresh

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return usage.estimate_tokens(text)
