"""Local quota governor.

Tracks approximate per-minute and per-day usage and denies requests that
would exceed the provider's rate limits before they are sent.
"""

from .governor import QuotaGovernor
from .limits import RATE_LIMITS, get_limits, get_tier_info
from .models import AdmissionDecision, RateLimit, ToolsUsed, UsageSummary, UsageWindow
from .window import check_admission, estimate_tokens, record_usage, rollover_if_needed

__all__ = [
    'AdmissionDecision',
    'QuotaGovernor',
    'RATE_LIMITS',
    'RateLimit',
    'ToolsUsed',
    'UsageSummary',
    'UsageWindow',
    'check_admission',
    'estimate_tokens',
    'get_limits',
    'get_tier_info',
    'record_usage',
    'rollover_if_needed',
]
