"""
E-Permitted Backend — User Service
===================================

What:  Account administration and profile management.
Who:   Called by the /api/users route handlers.

Access rules (enforced here, not only in routes):
    - anyone may edit their own name, email, phone, address and password
    - changing `role` or `is_active` requires MANAGE_USERS
"""

import asyncio
import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.exceptions import AuthorizationError, ConflictError, NotFoundError
from epermitted.models import Application, User
from epermitted.permissions import Permission, Role
from epermitted.schemas.user import UserCreate, UserUpdate
from epermitted.security import hash_password

logger = logging.getLogger(__name__)


class UserService:

    async def list_users(
        self,
        db: AsyncSession,
        role: Optional[Role] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[User], int]:
        filters = [User.role == role] if role is not None else []
        result = await db.execute(
            select(User).where(*filters).order_by(User.created_at.desc()).limit(limit).offset(offset)
        )
        count_result = await db.execute(select(func.count(User.id)).where(*filters))
        return list(result.scalars().all()), count_result.scalar() or 0

    async def get_user(self, db: AsyncSession, user_id: UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    async def get_user_applications(self, db: AsyncSession, user_id: UUID) -> List[Application]:
        """The user's applications, newest first."""
        result = await db.execute(
            select(Application)
            .where(Application.user_id == user_id)
            .order_by(Application.submitted_at.desc())
        )
        return list(result.scalars().all())

    async def create_user(self, db: AsyncSession, payload: UserCreate) -> User:
        """
        Create an account on behalf of someone else (staff tooling).

        Raises:
            ConflictError: email already in use
        """
        await self._ensure_email_free(db, payload.email)

        password_hash = None
        if payload.password:
            password_hash = await asyncio.to_thread(hash_password, payload.password)

        user = User(
            email=payload.email,
            password_hash=password_hash,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            address=payload.address,
            role=payload.role,
            is_active=payload.is_active,
        )
        await self._flush_unique(db, user, payload.email)
        logger.info("Created user %s with role %s", user.email, user.role.value)
        return user

    async def update_user(
        self,
        db: AsyncSession,
        user_id: UUID,
        payload: UserUpdate,
        actor: User,
    ) -> User:
        """
        Apply a partial update.

        Raises:
            NotFoundError: unknown user
            AuthorizationError: role/is_active change without MANAGE_USERS
            ConflictError: new email already in use
        """
        user = await self.get_user(db, user_id)

        if payload.privileged_fields and not actor.role.grants(Permission.MANAGE_USERS):
            raise AuthorizationError(
                context={"user_id": str(actor.id), "fields": payload.privileged_fields},
            )

        changes = payload.model_dump(exclude_unset=True)
        password = changes.pop("password", None)

        new_email = changes.get("email")
        if new_email is not None and new_email != user.email:
            await self._ensure_email_free(db, new_email)

        for field, value in changes.items():
            if value is None and field in ("email", "first_name", "last_name", "role", "is_active"):
                continue
            setattr(user, field, value)

        if password:
            user.password_hash = await asyncio.to_thread(hash_password, password)

        await self._flush_unique(db, user, user.email)
        await db.refresh(user)
        logger.info("Updated user %s (%s) by %s", user.id, ", ".join(sorted(changes)) or "no fields", actor.id)
        return user

    async def _ensure_email_free(self, db: AsyncSession, email: str) -> None:
        result = await db.execute(select(User.id).where(User.email == email))
        if result.first() is not None:
            raise ConflictError("Email already exists", context={"email": email})

    async def _flush_unique(self, db: AsyncSession, user: User, email: str) -> None:
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            raise ConflictError("Email already exists", context={"email": email})


user_service = UserService()
