"""Pure functions over the usage window.

Nothing here touches storage or reads the clock: callers pass the current time
and date in, and get a new window back. The minute window is a fixed-reset
counter, not a sliding window, so a client can burst up to 2x rpm across a
minute boundary; the server remains the real limiter.
"""

import logging
import math
from typing import Optional

from .limits import get_limits, normalize_tier
from .models import (
    RPD_EXCEEDED,
    RPM_EXCEEDED,
    TPM_EXCEEDED,
    AdmissionDecision,
    ToolsUsed,
    ToolUsage,
    UsageWindow,
)

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000


def rollover_if_needed(window: UsageWindow, now_ms: int, today: str) -> UsageWindow:
    """Reset counters whose window has passed.

    The minute and day checks are independent and may both fire. Applying this
    twice with the same inputs gives the same result as applying it once.

    Args:
        window: Current usage window (not modified)
        now_ms: Current time in epoch milliseconds
        today: Current YYYY-MM-DD in the quota reference timezone

    Returns:
        The input window when nothing changed, otherwise a rolled-over copy
    """
    update = {}

    # A clock that moved backwards also starts a new minute
    if now_ms - window.lastMinuteReset >= MINUTE_MS or now_ms < window.lastMinuteReset:
        update.update(requestsThisMinute=0, tokensThisMinute=0, lastMinuteReset=now_ms)

    if today != window.lastDayReset:
        update.update(requestsToday=0, toolUsageToday=ToolUsage(), lastDayReset=today)
        logger.info(f'Daily usage window rolled over from {window.lastDayReset} to {today}')

    if not update:
        return window
    return window.model_copy(update=update)


def check_admission(tier: str, model: str, window: UsageWindow, estimated_tokens: int = 0) -> AdmissionDecision:
    """Decide whether a request fits in the remaining local quota.

    Checks requests per minute, then tokens per minute (only when an estimate is
    given), then requests per day (only when the tier has a daily cap). The
    window should already be rolled over.
    """
    limits = get_limits(tier, model)

    if window.requestsThisMinute >= limits.rpm:
        decision = AdmissionDecision.deny(
            RPM_EXCEEDED, f'Rate limit exceeded: {limits.rpm} requests per minute. Please wait.'
        )
    elif estimated_tokens > 0 and window.tokensThisMinute + estimated_tokens > limits.tpm:
        decision = AdmissionDecision.deny(TPM_EXCEEDED, f'Token limit exceeded: {limits.tpm:,} tokens per minute.')
    elif limits.rpd > 0 and window.requestsToday >= limits.rpd:
        decision = AdmissionDecision.deny(
            RPD_EXCEEDED,
            f'Daily limit exceeded: {limits.rpd} requests per day. Resets at midnight Pacific Time.',
        )
    else:
        decision = AdmissionDecision.allow()

    if not decision.allowed:
        logger.info(f'Admission denied for {normalize_tier(tier)}/{model}: {decision.reason}')
    return decision


def record_usage(
    window: UsageWindow,
    actual_tokens: int,
    now_ms: int,
    today: str,
    tools_used: Optional[ToolsUsed] = None,
) -> UsageWindow:
    """Account one counted request against the window.

    Only call this for requests that were actually sent; denied requests must not
    be recorded.
    """
    window = rollover_if_needed(window, now_ms, today)

    tools = window.toolUsageToday.model_copy()
    if tools_used:
        if tools_used.googleSearch:
            tools.googleSearch += 1
        if tools_used.codeExecution:
            tools.codeExecution += 1
        if tools_used.urlContext:
            tools.urlContext += 1

    return window.model_copy(
        update={
            'requestsThisMinute': window.requestsThisMinute + 1,
            'tokensThisMinute': window.tokensThisMinute + max(0, actual_tokens),
            'requestsToday': window.requestsToday + 1,
            'toolUsageToday': tools,
        }
    )


def estimate_tokens(text: str) -> int:
    """Rough token count (one token per four characters), for pre-flight checks only."""
    return math.ceil(len(text) / 4)
