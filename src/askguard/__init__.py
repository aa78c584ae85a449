"""askguard - keeps an access token fresh and requests inside local rate limits."""

from askguard.auth import AuthSession, TokenManager
from askguard.config import GuardConfig
from askguard.errors import (
    AdmissionDeniedError,
    AskGuardError,
    AuthError,
    NotAuthenticatedError,
    RefreshFailedError,
    UnauthorizedError,
)
from askguard.orchestrator import RequestOrchestrator
from askguard.quota import AdmissionDecision, QuotaGovernor, UsageWindow
from askguard.scheduler import AsyncioTimers, BackgroundScheduler
from askguard.storage import InMemoryStorage, JsonFileStorage, ScopedStorage

__all__ = [
    'AdmissionDecision',
    'AdmissionDeniedError',
    'AskGuardError',
    'AsyncioTimers',
    'AuthError',
    'AuthSession',
    'BackgroundScheduler',
    'GuardConfig',
    'InMemoryStorage',
    'JsonFileStorage',
    'NotAuthenticatedError',
    'QuotaGovernor',
    'RefreshFailedError',
    'RequestOrchestrator',
    'ScopedStorage',
    'TokenManager',
    'UnauthorizedError',
    'UsageWindow',
]
