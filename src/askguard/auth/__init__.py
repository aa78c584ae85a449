"""Authentication for askguard.

Keeps the persisted session's access token valid and attaches it to
outbound requests.
"""

from .models import AuthResponse, AuthSession, TokenGrant, User
from .service import TokenManager

__all__ = ['AuthResponse', 'AuthSession', 'TokenGrant', 'TokenManager', 'User']
