"""Bearer token issuing and verification.

Identity itself is owned by an external provider; the API only needs a signed
token whose subject is the user id that owns books and assets.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 7


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed token for a user.

    Args:
        user_id: Becomes the ``sub`` claim
        expires_delta: Optional custom lifetime
    """
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[str]:
    """Return the user id of a valid token, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    return payload.get("sub") or None
