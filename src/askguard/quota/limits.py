"""Static rate limit table per API tier and model.

Numbers follow the provider's published quotas
(https://ai.google.dev/gemini-api/docs/quota-rate-limits). The table is never
mutated at runtime.
"""

from typing import Dict, Mapping

from .models import RateLimit, TierInfo

TIERS = ('free', 'tier1', 'tier2', 'tier3', 'unknown')
MODELS = ('gemini-2.5-flash', 'gemini-2.5-pro', 'gemini-2.0-flash')

UNKNOWN_TIER = 'unknown'

_FREE_LIMITS = {
    'gemini-2.5-flash': RateLimit(rpm=10, tpm=8_000_000, rpd=1500),
    'gemini-2.5-pro': RateLimit(rpm=2, tpm=8_000_000, rpd=50),
    'gemini-2.0-flash': RateLimit(rpm=15, tpm=30_000_000, rpd=1500),
}

RATE_LIMITS: Mapping[str, Mapping[str, RateLimit]] = {
    'free': _FREE_LIMITS,
    'tier1': {
        'gemini-2.5-flash': RateLimit(rpm=1000, tpm=8_000_000, rpd=0),
        'gemini-2.5-pro': RateLimit(rpm=1000, tpm=8_000_000, rpd=0),
        'gemini-2.0-flash': RateLimit(rpm=2000, tpm=30_000_000, rpd=0),
    },
    'tier2': {
        'gemini-2.5-flash': RateLimit(rpm=2000, tpm=8_000_000, rpd=0),
        'gemini-2.5-pro': RateLimit(rpm=2000, tpm=8_000_000, rpd=0),
        'gemini-2.0-flash': RateLimit(rpm=4000, tpm=30_000_000, rpd=0),
    },
    'tier3': {
        'gemini-2.5-flash': RateLimit(rpm=10_000, tpm=8_000_000, rpd=0),
        'gemini-2.5-pro': RateLimit(rpm=2000, tpm=8_000_000, rpd=0),
        'gemini-2.0-flash': RateLimit(rpm=30_000, tpm=30_000_000, rpd=0),
    },
    # Conservative defaults until the real tier is known
    UNKNOWN_TIER: dict(_FREE_LIMITS),
}

TIER_INFO: Dict[str, TierInfo] = {
    'free': TierInfo(
        name='Free Tier',
        description='Limited requests per day, suitable for testing',
        qualification='Available in eligible countries',
    ),
    'tier1': TierInfo(
        name='Tier 1',
        description='Higher limits with billing account',
        qualification='Billing account linked to project',
    ),
    'tier2': TierInfo(
        name='Tier 2',
        description='Enhanced limits for regular users',
        qualification='$250+ spent, 30+ days since payment',
    ),
    'tier3': TierInfo(
        name='Tier 3',
        description='Maximum limits for production use',
        qualification='$1000+ spent, 30+ days since payment',
    ),
    UNKNOWN_TIER: TierInfo(
        name='Unknown Tier',
        description='Tier not detected yet',
        qualification='Will detect on first API call',
    ),
}


def normalize_tier(tier: str) -> str:
    """Map unrecognized tier names to the conservative 'unknown' tier."""
    return tier if tier in RATE_LIMITS else UNKNOWN_TIER


def _most_conservative(limits: Mapping[str, RateLimit]) -> RateLimit:
    daily = [limit.rpd for limit in limits.values() if limit.rpd > 0]
    return RateLimit(
        rpm=min(limit.rpm for limit in limits.values()),
        tpm=min(limit.tpm for limit in limits.values()),
        rpd=min(daily) if daily else 0,
    )


def get_limits(tier: str, model: str) -> RateLimit:
    """Look up the limits for a tier and model.

    Unknown tiers use the 'unknown' row. Models missing from the table get the
    strictest limits of their tier rather than no limits at all.

    Example:
        >>> get_limits('free', 'gemini-2.5-pro').rpm
        2
        >>> get_limits('enterprise', 'gemini-2.5-pro').rpm
        2
    """
    tier_limits = RATE_LIMITS[normalize_tier(tier)]
    if model in tier_limits:
        return tier_limits[model]
    return _most_conservative(tier_limits)


def get_tier_info(tier: str) -> TierInfo:
    return TIER_INFO[normalize_tier(tier)]
