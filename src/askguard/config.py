"""Runtime configuration for askguard.

Defaults can be overridden through ASKGUARD_* environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .clock import QUOTA_TIMEZONE
from .storage import DEFAULT_STATE_FILE

DEFAULT_API_BASE_URL = 'http://localhost:8090/api'


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class GuardConfig:
    """Settings shared by the token manager, quota governor and scheduler."""

    api_base_url: str = DEFAULT_API_BASE_URL
    tier: str = 'unknown'
    model: str = 'gemini-2.5-flash'
    enforce_rate_limit: bool = True
    safety_buffer_ms: int = 2 * 60 * 1000  # Refresh when within 2 minutes of expiry
    refresh_interval_minutes: float = 5.0
    liveness_interval_minutes: float = 1.0
    http_timeout: float = 30.0
    timezone: str = QUOTA_TIMEZONE
    state_file: Path = field(default_factory=lambda: DEFAULT_STATE_FILE)

    def __post_init__(self):
        self.api_base_url = self.api_base_url.rstrip('/')
        if self.refresh_interval_minutes <= 0 or self.liveness_interval_minutes <= 0:
            raise ValueError('Scheduler intervals must be positive')
        if self.safety_buffer_ms < 0:
            raise ValueError('safety_buffer_ms cannot be negative')

    @classmethod
    def from_env(cls, state_file: Optional[Path] = None) -> 'GuardConfig':
        """Build a config from ASKGUARD_* environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            api_base_url=os.getenv('ASKGUARD_API_URL', defaults.api_base_url),
            tier=os.getenv('ASKGUARD_TIER', defaults.tier),
            model=os.getenv('ASKGUARD_MODEL', defaults.model),
            enforce_rate_limit=_env_bool('ASKGUARD_ENFORCE_RATE_LIMIT', defaults.enforce_rate_limit),
            safety_buffer_ms=int(os.getenv('ASKGUARD_SAFETY_BUFFER_MS', defaults.safety_buffer_ms)),
            refresh_interval_minutes=float(
                os.getenv('ASKGUARD_REFRESH_INTERVAL_MINUTES', defaults.refresh_interval_minutes)
            ),
            liveness_interval_minutes=float(
                os.getenv('ASKGUARD_LIVENESS_INTERVAL_MINUTES', defaults.liveness_interval_minutes)
            ),
            http_timeout=float(os.getenv('ASKGUARD_HTTP_TIMEOUT', defaults.http_timeout)),
            timezone=os.getenv('ASKGUARD_TIMEZONE', defaults.timezone),
            state_file=Path(state_file or os.getenv('ASKGUARD_STATE_FILE', str(defaults.state_file))).expanduser(),
        )
