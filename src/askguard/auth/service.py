"""Token lifecycle management for the askguard auth backend.

Loads the persisted session, refreshes the access token shortly before it
expires, attaches bearer credentials to outbound requests and clears the
session on logout or when the server rejects the refresh token.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..clock import Clock, SystemClock
from ..config import GuardConfig
from ..errors import (
    AuthError,
    NotAuthenticatedError,
    RefreshFailedError,
    UnauthorizedError,
    map_refresh_failure,
)
from ..metrics import GuardMetrics, get_metrics
from ..storage import AUTH_SESSION_KEY, ScopedStorage
from .models import DEFAULT_EXPIRES_IN_SECONDS, AuthResponse, AuthSession, TokenGrant

logger = logging.getLogger(__name__)

SESSION_CHANGED = 'Session changed while the token was being refreshed'


def _json_or_none(response: httpx.Response) -> Optional[dict]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class TokenManager:
    """Owns the single AuthSession and keeps its access token valid.

    Refreshes are single-flight: while one refresh is in progress, every other
    caller awaits the same task instead of spending the refresh token again.

    Example:
        >>> async with TokenManager(JsonFileStorage()) as tokens:
        ...     await tokens.login('me@example.com', 'secret')
        ...     response = await tokens.authenticated_request('GET', '/customer/profile')
    """

    def __init__(
        self,
        storage: ScopedStorage,
        config: Optional[GuardConfig] = None,
        http: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[GuardMetrics] = None,
    ):
        """Initialize the token manager.

        Args:
            storage: Store holding the persisted session
            config: Endpoints and safety buffer (defaults to GuardConfig())
            http: HTTP client to use; one is created (and owned) when omitted
            clock: Time source (defaults to the system clock)
            metrics: Metrics sink (defaults to the process-wide instance)
        """
        self.storage = storage
        self.config = config or GuardConfig()
        self.clock = clock or SystemClock(self.config.timezone)
        self.metrics = metrics or get_metrics()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=self.config.http_timeout)
        self._refresh_task: Optional[asyncio.Task] = None
        # Bumped on login/logout so a refresh that was already in flight cannot resurrect a session
        self._generation = 0

    def _url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f'{self.config.api_base_url}{path}'

    async def load_session(self) -> Optional[AuthSession]:
        """Load the stored session, or None when logged out."""
        data = await self.storage.get(AUTH_SESSION_KEY)
        if not data:
            return None
        try:
            return AuthSession.model_validate(data)
        except ValidationError as e:
            logger.warning(f'Stored session is invalid and will be ignored: {e}')
            return None

    async def save_session(self, session: AuthSession) -> None:
        await self.storage.set(AUTH_SESSION_KEY, session.model_dump(mode='json'))

    async def clear_session(self) -> None:
        await self.storage.remove(AUTH_SESSION_KEY)

    async def has_valid_session(self) -> bool:
        """Cheap liveness check: a session exists and its access token has not expired."""
        session = await self.load_session()
        return session is not None and not session.is_expired(self.clock.now_ms())

    async def get_valid_access_token(self) -> str:
        """Return an access token that is valid for at least the safety buffer.

        Returns the cached token without any network call unless it expires within
        the safety buffer, in which case it is refreshed first.

        Raises:
            NotAuthenticatedError: If no session is stored
            RefreshFailedError: If a needed refresh fails
        """
        session = await self.load_session()
        if session is None:
            raise NotAuthenticatedError()

        remaining_ms = session.expires_in_ms(self.clock.now_ms())
        if remaining_ms > self.config.safety_buffer_ms:
            return session.accessToken

        if self._refresh_task is None:
            # A refresh may have completed while the session was being read
            session = await self.load_session()
            if session is None:
                raise NotAuthenticatedError()
            remaining_ms = session.expires_in_ms(self.clock.now_ms())
            if remaining_ms > self.config.safety_buffer_ms:
                return session.accessToken

        logger.info(f'Access token expires in {remaining_ms // 1000}s, refreshing')
        refreshed = await self.refresh()
        return refreshed.accessToken

    async def refresh(self) -> AuthSession:
        """Exchange the refresh token for a new access token.

        Concurrent callers share the in-flight refresh.

        Returns:
            The newly stored session

        Raises:
            NotAuthenticatedError: If no session is stored
            RefreshFailedError: fatal=True when the server rejected the refresh token
                (session deleted), fatal=False for transient failures (session untouched)
        """
        if self._refresh_task is None:
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_once())
        else:
            logger.debug('Joining refresh already in progress')
        # Shield so a cancelled caller does not cancel the refresh other callers are waiting on
        return await asyncio.shield(self._refresh_task)

    async def _refresh_once(self) -> AuthSession:
        try:
            return await self._perform_refresh()
        finally:
            self._refresh_task = None

    async def _perform_refresh(self) -> AuthSession:
        generation = self._generation
        session = await self.load_session()
        if session is None:
            raise NotAuthenticatedError()

        issued_at = self.clock.now_ms()
        logger.info('Refreshing access token')

        try:
            with self.metrics.time_refresh():
                response = await self._http.post(
                    self._url('/auth/refresh'),
                    json={'refreshToken': session.refreshToken},
                    headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
                )
        except httpx.HTTPError as e:
            self.metrics.refresh_attempts.labels(outcome='transient').inc()
            logger.warning(f'Token refresh failed, will retry later: {type(e).__name__}: {e}')
            raise RefreshFailedError(f'Token refresh failed: {e}', fatal=False) from e

        payload = _json_or_none(response)

        if response.status_code == 401:
            self.metrics.refresh_attempts.labels(outcome='fatal').inc()
            if generation != self._generation:
                # The rejected token belonged to a session that has since been replaced or removed
                logger.info('Refresh token rejected after the session changed, keeping the current session')
                raise NotAuthenticatedError(SESSION_CHANGED)
            logger.warning('Refresh token rejected by server, clearing session')
            await self.clear_session()
            raise map_refresh_failure(response.status_code, payload)

        if not response.is_success:
            self.metrics.refresh_attempts.labels(outcome='transient').inc()
            logger.warning(f'Token refresh failed with status {response.status_code}, will retry later')
            raise map_refresh_failure(response.status_code, payload)

        try:
            result = AuthResponse.model_validate(payload or {})
        except ValidationError as e:
            self.metrics.refresh_attempts.labels(outcome='transient').inc()
            raise RefreshFailedError(f'Malformed refresh response: {e}', fatal=False) from e

        if not result.success or result.data is None:
            self.metrics.refresh_attempts.labels(outcome='transient').inc()
            logger.warning(f'Token refresh unsuccessful: {result.error_text}')
            raise RefreshFailedError(
                f'Token refresh failed: {result.error_text}', fatal=False, status_code=response.status_code
            )

        if generation != self._generation:
            raise NotAuthenticatedError(SESSION_CHANGED)

        refreshed = self._session_from_grant(result.data, issued_at, previous=session)
        await self.save_session(refreshed)

        self.metrics.refresh_attempts.labels(outcome='success').inc()
        rotated = ' (refresh token rotated)' if result.data.refreshToken else ''
        logger.info(f'Access token refreshed, expires in {(refreshed.expiresAt - issued_at) // 1000}s{rotated}')
        return refreshed

    @staticmethod
    def _session_from_grant(grant: TokenGrant, issued_at: int, previous: Optional[AuthSession] = None) -> AuthSession:
        expires_in = grant.expiresIn if grant.expiresIn is not None else DEFAULT_EXPIRES_IN_SECONDS
        refresh_token = grant.refreshToken or (previous.refreshToken if previous else None)
        if not refresh_token:
            raise AuthError('Auth response did not include a refresh token')

        return AuthSession(
            accessToken=grant.accessToken,
            refreshToken=refresh_token,
            expiresAt=issued_at + expires_in * 1000,
            user=grant.user or (previous.user if previous else None),
        )

    async def _send(self, method: str, url: str, token: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop('headers', None) or {})
        headers['Authorization'] = f'Bearer {token}'
        return await self._http.request(method, self._url(url), headers=headers, **kwargs)

    async def authenticated_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request with a bearer token, refreshing and retrying once on 401.

        Args:
            method: HTTP method
            url: Absolute URL, or a path relative to the configured API base URL
            **kwargs: Passed through to httpx.AsyncClient.request()

        Returns:
            The response; any status other than 401 is returned as-is

        Raises:
            NotAuthenticatedError: If no session is stored
            RefreshFailedError: If the token could not be refreshed
            UnauthorizedError: If the retried request is also rejected with 401
        """
        token = await self.get_valid_access_token()
        response = await self._send(method, url, token, **kwargs)
        if response.status_code != 401:
            return response

        logger.info(f'{method} {url} returned 401 with a validated token, refreshing and retrying once')
        session = await self.refresh()
        response = await self._send(method, url, session.accessToken, **kwargs)
        if response.status_code == 401:
            raise UnauthorizedError(response)
        return response

    async def _authenticate(self, path: str, body: dict) -> AuthSession:
        issued_at = self.clock.now_ms()
        try:
            response = await self._http.post(self._url(path), json=body)
        except httpx.HTTPError as e:
            raise AuthError(f'Network error: {e}') from e

        payload = _json_or_none(response)
        try:
            result = AuthResponse.model_validate(payload or {})
        except ValidationError as e:
            raise AuthError(f'Malformed auth response: {e}', status_code=response.status_code) from e

        if not response.is_success or not result.success or result.data is None:
            raise AuthError(result.error_text, status_code=response.status_code)

        session = self._session_from_grant(result.data, issued_at)
        self._generation += 1
        await self.save_session(session)
        return session

    async def login(self, email: str, password: str) -> AuthSession:
        """Log in with email and password and persist the new session.

        Raises:
            AuthError: If the backend rejects the credentials or is unreachable
        """
        session = await self._authenticate('/auth/login', {'email': email, 'password': password})
        logger.info(f'Logged in as {email}')
        return session

    async def register(self, email: str, password: str, name: str, phone: Optional[str] = None) -> AuthSession:
        """Create an account and persist the resulting session."""
        body = {'email': email, 'password': password, 'name': name}
        if phone:
            body['phone'] = phone
        session = await self._authenticate('/auth/register', body)
        logger.info(f'Registered {email}')
        return session

    async def logout(self) -> None:
        """Notify the backend (best effort) and always remove the local session."""
        session = await self.load_session()
        self._generation += 1
        try:
            if session is not None:
                await self._http.post(
                    self._url('/auth/logout'), headers={'Authorization': f'Bearer {session.accessToken}'}
                )
        except httpx.HTTPError as e:
            logger.warning(f'Logout notification failed, clearing local session anyway: {e}')
        finally:
            await self.clear_session()
            logger.info('Logged out')

    async def close(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
