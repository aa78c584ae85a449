"""Exception hierarchy for askguard.

Auth failures and local quota denials are raised at the boundary between the
core and its caller. Each exception carries enough context for the caller to
decide whether to retry, ask the user to log in again, or show an inline message.
"""

from typing import TYPE_CHECKING, Optional

import httpx

if TYPE_CHECKING:
    from .quota.models import AdmissionDecision


class AskGuardError(Exception):
    """Base exception for all askguard errors."""

    def __init__(self, message: str, error_code: str = ''):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AuthError(AskGuardError):
    """Raised when the auth backend rejects a login, registration or request."""

    def __init__(self, message: str, error_code: str = '', status_code: Optional[int] = None):
        super().__init__(message, error_code)
        self.status_code = status_code


class NotAuthenticatedError(AuthError):
    """No session is stored. Never retried."""

    def __init__(self, message: str = 'Not authenticated. Please log in first.'):
        super().__init__(message, 'NOT_AUTHENTICATED')


class RefreshFailedError(AuthError):
    """Refreshing the access token failed.

    Attributes:
        fatal: True when the server rejected the refresh token (session deleted,
            user must log in again). False for network or server errors, where
            the stored session is untouched and a later retry may succeed.
    """

    def __init__(self, message: str, fatal: bool, status_code: Optional[int] = None):
        error_code = 'REFRESH_REJECTED' if fatal else 'REFRESH_UNAVAILABLE'
        super().__init__(message, error_code, status_code)
        self.fatal = fatal

    @property
    def transient(self) -> bool:
        return not self.fatal


class UnauthorizedError(AuthError):
    """Server answered 401 even after one refresh and retry."""

    def __init__(self, response: httpx.Response):
        super().__init__(
            f'Request to {response.request.url} was rejected with 401 after refreshing the token',
            'UNAUTHORIZED',
            response.status_code,
        )
        self.response = response


class AdmissionDeniedError(AskGuardError):
    """Local quota would be exceeded; the request was not sent."""

    def __init__(self, decision: 'AdmissionDecision'):
        super().__init__(decision.message or 'Rate limit exceeded', decision.reason or 'ADMISSION_DENIED')
        self.decision = decision

    @property
    def reason(self) -> Optional[str]:
        return self.decision.reason


def map_refresh_failure(status_code: int, error_data: Optional[dict] = None) -> RefreshFailedError:
    """Map a failed refresh response to a RefreshFailedError.

    Only 401 means the refresh token itself is no longer valid. Every other status
    (rate limits, 5xx, unexpected 4xx) leaves the session alone.

    Example:
        >>> map_refresh_failure(401).fatal
        True
        >>> map_refresh_failure(503).fatal
        False
    """
    detail = ''
    if error_data:
        detail = error_data.get('error') or error_data.get('message') or ''

    if status_code == 401:
        message = 'Session expired. Please log in again.'
        if detail:
            message = f'{message} ({detail})'
        return RefreshFailedError(message, fatal=True, status_code=status_code)

    message = f'Token refresh failed (status: {status_code})'
    if detail:
        message = f'{detail} (status: {status_code})'
    return RefreshFailedError(message, fatal=False, status_code=status_code)
