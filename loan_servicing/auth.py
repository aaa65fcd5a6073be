"""
Session Module

An explicit ``Session`` is threaded through every controller call instead of
reading credentials from ambient state. Tokens are HS256 JWTs carrying the
user id (``sub``) and role.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt

from .config import get_config
from .errors import AuthenticationError, ForbiddenError

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Session:
    """Authenticated actor for the duration of one request or connection"""
    user_id: str
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def require_admin(self) -> None:
        if not self.is_admin:
            raise ForbiddenError("Admins only")

    def can_access(self, owner_id: str) -> bool:
        """Owners see their own loans; administrators see every loan"""
        return self.is_admin or self.user_id == owner_id


def create_access_token(user_id: str, role: str = ROLE_USER,
                        expires_in: Optional[timedelta] = None,
                        secret: Optional[str] = None,
                        algorithm: Optional[str] = None) -> str:
    """Issue a signed token for a user (used by the login collaborator and tests)"""
    config = get_config()
    expires_in = expires_in or timedelta(hours=config.jwt_expiry_hours)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, secret or config.jwt_secret,
                      algorithm=algorithm or config.jwt_algorithm)


def decode_access_token(token: str, secret: Optional[str] = None,
                        algorithm: Optional[str] = None) -> Session:
    """
    Validate a token and build the session it represents.

    The API passes its own config's secret and algorithm; the global config
    is only the fallback for standalone use.

    Raises:
        AuthenticationError: If the token is expired, malformed or has no subject
    """
    config = get_config()
    try:
        payload = jwt.decode(token, secret or config.jwt_secret,
                             algorithms=[algorithm or config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired. Please login again.")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token. Please login again.")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return Session(user_id=str(user_id), role=payload.get("role") or ROLE_USER)
