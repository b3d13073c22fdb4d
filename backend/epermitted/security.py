"""
E-Permitted Backend — Password Hashing & Tokens
================================================

What:  bcrypt password hashing and HS256 JWT issue/verify.
How:   Pure functions over `settings`; no database access. Verification
       errors are translated into AuthenticationError with the category the
       client is allowed to see ("Token expired" / "Invalid token").
Who:   Used by the auth service (register/login) and the bearer dependency.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from epermitted.config import Settings, settings as default_settings
from epermitted.exceptions import AuthenticationError
from epermitted.models import User

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds or default_settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """False for accounts without a password and for malformed hashes."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def create_access_token(user: User, config: Optional[Settings] = None) -> str:
    """
    Issue a signed token for `user`.

    Claims: sub (user id), email, role, iat, exp.
    """
    config = config or default_settings
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "iat": now,
        "exp": now + timedelta(hours=config.jwt_expiry_hours),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str, config: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify signature and expiry, returning the claims.

    Raises:
        AuthenticationError: "Token expired" or "Invalid token"
    """
    config = config or default_settings
    try:
        claims = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="token_expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", code="invalid_token")
    return claims
