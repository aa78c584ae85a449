"""Data models for the auth backend.

Field names match the backend's JSON so sessions can be persisted and
validated without a translation layer.
"""

from typing import Optional

from pydantic import BaseModel, Field

# Used only when the server omits expiresIn
DEFAULT_EXPIRES_IN_SECONDS = 7 * 24 * 60 * 60


class User(BaseModel):
    """Denormalized profile cache. Not authoritative."""

    id: str = Field(..., description='User ID')
    email: str = Field(..., description='Account email')
    name: Optional[str] = Field(None, description='Display name')
    credits: int = Field(0, description='Remaining request credits')
    balance: float = Field(0, description='Account balance')
    subscriptionStatus: Optional[str] = Field(None, description='Subscription state, if any')


class AuthSession(BaseModel):
    """One authenticated identity, persisted under the auth_session key."""

    accessToken: str = Field(..., description='Short-lived bearer credential')
    refreshToken: str = Field(..., description='Long-lived credential for minting new access tokens')
    expiresAt: int = Field(..., description='Access token expiry timestamp in milliseconds')
    user: Optional[User] = Field(None, description='Cached user profile')

    def expires_in_ms(self, now_ms: int) -> int:
        return self.expiresAt - now_ms

    def is_expired(self, now_ms: int) -> bool:
        return self.expiresAt <= now_ms


class TokenGrant(BaseModel):
    """The data block returned by login, register and refresh."""

    accessToken: str = Field(..., description='New access token')
    refreshToken: Optional[str] = Field(None, description='New refresh token (if rotated)')
    expiresIn: Optional[int] = Field(None, description='Seconds until the access token expires')
    user: Optional[User] = Field(None, description='User information')


class AuthResponse(BaseModel):
    """Envelope used by every auth endpoint."""

    success: bool
    data: Optional[TokenGrant] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def error_text(self) -> str:
        return self.error or self.message or 'Unknown error'
