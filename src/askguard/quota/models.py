"""Data models for local quota bookkeeping."""

from typing import Optional

from pydantic import BaseModel, Field

# Admission denial reasons
RPM_EXCEEDED = 'rpm_exceeded'
TPM_EXCEEDED = 'tpm_exceeded'
RPD_EXCEEDED = 'rpd_exceeded'


class RateLimit(BaseModel):
    """Limits for one (tier, model) pair. rpd == 0 means unlimited."""

    rpm: int = Field(..., description='Requests per minute')
    tpm: int = Field(..., description='Tokens per minute')
    rpd: int = Field(..., description='Requests per day (0 = unlimited)')

    model_config = {'frozen': True}


class ToolUsage(BaseModel):
    """Per-day tool invocation counters."""

    googleSearch: int = 0
    codeExecution: int = 0
    urlContext: int = 0


class ToolsUsed(BaseModel):
    """Which tools a counted request used."""

    googleSearch: bool = False
    codeExecution: bool = False
    urlContext: bool = False


class UsageWindow(BaseModel):
    """Local approximation of the provider's server-side counters.

    Persisted under the usage_window key. Minute counters reset 60s after
    lastMinuteReset; daily counters reset when the reference-timezone date
    moves past lastDayReset.
    """

    requestsThisMinute: int = 0
    tokensThisMinute: int = 0
    requestsToday: int = 0
    lastMinuteReset: int = Field(..., description='Epoch milliseconds of the last minute reset')
    lastDayReset: str = Field(..., description='YYYY-MM-DD of the last day reset')
    toolUsageToday: ToolUsage = Field(default_factory=ToolUsage)

    @classmethod
    def fresh(cls, now_ms: int, today: str) -> 'UsageWindow':
        return cls(lastMinuteReset=now_ms, lastDayReset=today)


class AdmissionDecision(BaseModel):
    """Outcome of a pre-flight quota check. Never persisted."""

    allowed: bool
    reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls) -> 'AdmissionDecision':
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, message: str) -> 'AdmissionDecision':
        return cls(allowed=False, reason=reason, message=message)


class TierInfo(BaseModel):
    name: str
    description: str
    qualification: str


class UsageSummary(BaseModel):
    """Current counters next to the limits that apply to them."""

    tier: str
    model: str
    limits: RateLimit
    window: UsageWindow

    @property
    def remaining_requests_this_minute(self) -> int:
        return max(0, self.limits.rpm - self.window.requestsThisMinute)

    @property
    def remaining_tokens_this_minute(self) -> int:
        return max(0, self.limits.tpm - self.window.tokensThisMinute)

    @property
    def remaining_requests_today(self) -> Optional[int]:
        """None when the daily quota is unlimited."""
        if self.limits.rpd == 0:
            return None
        return max(0, self.limits.rpd - self.window.requestsToday)
