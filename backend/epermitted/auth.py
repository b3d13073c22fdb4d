"""
E-Permitted Backend — Authentication & Authorization Dependencies
==================================================================

What:  FastAPI dependencies that resolve the bearer token to an active User
       and enforce role permissions.
How:   `get_current_user` parses `Authorization: Bearer <token>`, verifies
       it, and re-fetches the user so deactivation takes effect immediately.
       `require_permission(Permission.X)` builds a dependency on top of it.

Usage:
    @router.get("/users")
    async def list_users(user: User = Depends(require_permission(Permission.MANAGE_USERS))):
        ...
"""

import logging
import uuid

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.database import get_db_session
from epermitted.exceptions import AuthenticationError, AuthorizationError
from epermitted.models import User
from epermitted.permissions import Permission
from epermitted.security import decode_access_token

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str) -> str:
    """
    Raises:
        AuthenticationError: header missing or not `Bearer <token>`
    """
    if not authorization:
        raise AuthenticationError("No token provided", code="no_token")
    if not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError("Invalid token format", code="invalid_token_format")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token or " " in token:
        raise AuthenticationError("Invalid token format", code="invalid_token_format")
    return token


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Resolve the request's bearer token to an active user (401 otherwise)."""
    token = extract_bearer_token(request.headers.get("Authorization", ""))
    claims = decode_access_token(token)

    try:
        user_id = uuid.UUID(str(claims["sub"]))
    except ValueError:
        raise AuthenticationError("Invalid token", code="invalid_token")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.info("Rejected token for missing or inactive user %s", user_id)
        raise AuthenticationError("User not found or inactive", code="user_inactive")

    # Read back by the access log
    request.state.user_id = str(user.id)
    request.state.user_role = user.role.value
    return user


def require_permission(permission: Permission):
    """Dependency factory: the current user's role must grant `permission`."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if not user.role.grants(permission):
            raise AuthorizationError(
                context={"user_id": str(user.id), "permission": permission.value},
            )
        return user

    return checker


def ensure_self_or_permission(user: User, target_id: uuid.UUID, permission: Permission) -> None:
    """Allow users to act on their own record, others only with `permission`."""
    if user.id != target_id and not user.role.grants(permission):
        raise AuthorizationError(
            context={"user_id": str(user.id), "permission": permission.value},
        )
