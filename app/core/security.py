"""Session-token verification.

Tokens are issued by the session provider (the login flow is not part
of this service) and carried in the ``auth-token`` cookie or an
``Authorization: Bearer`` header.  Both sides share ``SESSION_SECRET``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class SessionUser(BaseModel):
    """The acting user resolved from a session token."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    is_admin: bool = False

    def can_modify(self, owner_id: str) -> bool:
        """Owners may modify their own buyers; admins may modify any."""
        return self.is_admin or self.id == owner_id


def create_session_token(user: SessionUser, expires_in: Optional[timedelta] = None) -> str:
    """Sign a session token for *user* (used by the session provider and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user.id,
        "email": user.email,
        "name": user.name,
        "is_admin": user.is_admin,
        "iat": now,
        "exp": now + (expires_in or timedelta(days=settings.SESSION_TTL_DAYS)),
    }
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM)


def decode_session_token(token: str) -> SessionUser:
    """Verify *token* and return the user it identifies.

    Raises:
        AuthenticationError: If the token is expired, tampered with, or
            carries no user id.
    """
    try:
        payload = jwt.decode(
            token, settings.SESSION_SECRET, algorithms=[settings.SESSION_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired")
    except jwt.InvalidTokenError as exc:
        logger.warning("Session token verification failed: %s", exc)
        raise AuthenticationError("Invalid session token")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid session token")
    return SessionUser(
        id=str(user_id),
        email=payload.get("email"),
        name=payload.get("name"),
        is_admin=bool(payload.get("is_admin", False)),
    )
