# tests/conftest.py
"""
Shared pytest configuration and fixtures for the askguard test suite.
"""

import logging

import httpx
import pytest
import pytest_asyncio

from askguard.auth.models import AuthSession, User
from askguard.auth.service import TokenManager
from askguard.clock import ManualClock
from askguard.config import GuardConfig
from askguard.metrics import GuardMetrics
from askguard.quota.governor import QuotaGovernor
from askguard.storage import AUTH_SESSION_KEY, InMemoryStorage

logging.basicConfig(level=logging.INFO)

API_BASE_URL = 'http://auth.test/api'
NOW_MS = 1_704_153_600_000  # 2024-01-02T00:00:00Z
TODAY = '2024-01-01'  # Same instant in Pacific Time


@pytest.fixture
def clock():
    return ManualClock(now_ms=NOW_MS, today=TODAY)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def metrics():
    """Metrics on a private registry so tests can read exact values"""
    return GuardMetrics()


@pytest.fixture
def config(tmp_path):
    return GuardConfig(api_base_url=API_BASE_URL, tier='free', state_file=tmp_path / 'state.json')


@pytest.fixture
def make_session():
    """Build an AuthSession expiring `expires_in_ms` after NOW_MS"""

    def _make(expires_in_ms: int = 60 * 60 * 1000, access: str = 'access-1', refresh: str = 'refresh-1'):
        return AuthSession(
            accessToken=access,
            refreshToken=refresh,
            expiresAt=NOW_MS + expires_in_ms,
            user=User(id='user-1', email='ada@example.com', name='Ada', credits=10, balance=2.5),
        )

    return _make


@pytest.fixture
def store_session(storage):
    """Persist a session directly into storage"""

    async def _store(session: AuthSession):
        await storage.set(AUTH_SESSION_KEY, session.model_dump(mode='json'))

    return _store


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def token_manager(storage, config, http_client, clock, metrics):
    return TokenManager(storage, config, http=http_client, clock=clock, metrics=metrics)


@pytest.fixture
def governor(storage, clock, metrics):
    return QuotaGovernor(storage, clock, metrics)


@pytest.fixture
def refresh_body():
    """Body of a successful /auth/refresh (or login) response"""

    def _body(access_token='access-2', expires_in=3600, refresh_token=None, user=None):
        data = {'accessToken': access_token, 'expiresIn': expires_in}
        if refresh_token is not None:
            data['refreshToken'] = refresh_token
        if user is not None:
            data['user'] = user
        return {'success': True, 'data': data}

    return _body
