"""
E-Permitted Backend — Auth Service (Registration & Login)
==========================================================

What:  Creates citizen accounts and exchanges credentials for bearer tokens.
How:   bcrypt work runs in a worker thread so a slow hash never stalls the
       event loop; duplicate emails are caught both by a lookup and by the
       unique constraint (two simultaneous registrations).

Login outcomes:
    unknown email / wrong password → 401 "Invalid credentials"
    correct password, inactive     → 401 "Account is inactive" (no token)
    success                        → token + last_login_at recorded
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.exceptions import AuthenticationError, ConflictError
from epermitted.models import User
from epermitted.permissions import DEFAULT_ROLE
from epermitted.schemas.auth import LoginRequest, RegisterRequest
from epermitted.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


class AuthService:

    async def register(self, db: AsyncSession, payload: RegisterRequest) -> User:
        """
        Create an active citizen account.

        Raises:
            ConflictError: email already registered (no row is created)
        """
        if await self._email_taken(db, payload.email):
            raise ConflictError("Email already registered", context={"email": payload.email})

        password_hash = await asyncio.to_thread(hash_password, payload.password)
        user = User(
            email=payload.email,
            password_hash=password_hash,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            role=DEFAULT_ROLE,
            is_active=True,
        )
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            raise ConflictError("Email already registered", context={"email": payload.email})

        logger.info("Registered user %s (%s)", user.id, user.email)
        return user

    async def login(self, db: AsyncSession, payload: LoginRequest) -> Tuple[str, User]:
        """
        Verify credentials and issue a token.

        Raises:
            AuthenticationError: invalid credentials or inactive account
        """
        result = await db.execute(select(User).where(User.email == payload.email))
        user = result.scalar_one_or_none()

        if user is None:
            logger.info("Login failed for unknown email %s", payload.email)
            raise AuthenticationError("Invalid credentials", code="invalid_credentials")

        if not user.is_active:
            logger.info("Login refused for inactive account %s", payload.email)
            raise AuthenticationError("Account is inactive", code="account_inactive")

        password_ok = await asyncio.to_thread(verify_password, payload.password, user.password_hash)
        if not password_ok:
            logger.info("Login failed for %s: wrong password", payload.email)
            raise AuthenticationError("Invalid credentials", code="invalid_credentials")

        user.last_login_at = datetime.now(timezone.utc)
        await db.flush()

        token = create_access_token(user)
        logger.info("User %s logged in", user.id)
        return token, user

    async def _email_taken(self, db: AsyncSession, email: str) -> bool:
        result = await db.execute(select(User.id).where(User.email == email))
        return result.first() is not None


auth_service = AuthService()
