"""
E-Permitted Backend — User Route Handlers
==========================================

Route Inventory:
    GET  /api/users           MANAGE_USERS       list accounts
    POST /api/users           MANAGE_USERS       create an account
    GET  /api/users/profile   bearer             own profile + applications
    PUT  /api/users/profile   bearer             update own profile
    GET  /api/users/{id}      self or VIEW_USERS
    PUT  /api/users/{id}      self or MANAGE_USERS

`/profile` is declared before `/{user_id}` so it is not parsed as an id.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.auth import ensure_self_or_permission, get_current_user, require_permission
from epermitted.database import get_db_session
from epermitted.models import User
from epermitted.permissions import Permission, Role
from epermitted.schemas.application import ApplicationSummary
from epermitted.schemas.common import DataResponse, ErrorResponse, ListResponse
from epermitted.schemas.user import UserCreate, UserDetailResponse, UserResponse, UserUpdate
from epermitted.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

_AUTH_ERRORS = {
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    403: {"description": "Insufficient permissions", "model": ErrorResponse},
}


class UserEnvelope(BaseModel):
    success: bool = True
    user: UserDetailResponse


async def _detail(db: AsyncSession, user: User) -> UserDetailResponse:
    applications = await user_service.get_user_applications(db, user.id)
    return UserDetailResponse(
        **UserResponse.model_validate(user).model_dump(),
        applications=[ApplicationSummary.model_validate(a) for a in applications],
    )


@router.get(
    "",
    response_model=ListResponse[UserResponse],
    responses=_AUTH_ERRORS,
    summary="List user accounts",
)
async def list_users(
    role: Optional[Role] = Query(default=None, description="Only users with this role"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: User = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db_session),
) -> ListResponse[UserResponse]:
    users, total = await user_service.list_users(db, role=role, limit=limit, offset=offset)
    return ListResponse[UserResponse](
        data=[UserResponse.model_validate(u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    status_code=201,
    response_model=DataResponse[UserResponse],
    responses={**_AUTH_ERRORS, 409: {"description": "Email already exists", "model": ErrorResponse}},
    summary="Create a user account",
)
async def create_user(
    payload: UserCreate,
    _: User = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[UserResponse]:
    user = await user_service.create_user(db, payload)
    return DataResponse[UserResponse](data=UserResponse.model_validate(user))


@router.get(
    "/profile",
    response_model=UserEnvelope,
    responses=_AUTH_ERRORS,
    summary="Current user's profile",
)
async def get_profile(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    return UserEnvelope(user=await _detail(db, current_user))


@router.put(
    "/profile",
    response_model=UserEnvelope,
    responses={**_AUTH_ERRORS, 409: {"description": "Email already exists", "model": ErrorResponse}},
    summary="Update the current user's profile",
)
async def update_profile(
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    user = await user_service.update_user(db, current_user.id, payload, actor=current_user)
    return UserEnvelope(user=await _detail(db, user))


@router.get(
    "/{user_id}",
    response_model=UserEnvelope,
    responses={**_AUTH_ERRORS, 404: {"description": "User not found", "model": ErrorResponse}},
    summary="Get a user with their applications",
)
async def get_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    ensure_self_or_permission(current_user, user_id, Permission.VIEW_USERS)
    user = await user_service.get_user(db, user_id)
    return UserEnvelope(user=await _detail(db, user))


@router.put(
    "/{user_id}",
    response_model=UserEnvelope,
    responses={
        **_AUTH_ERRORS,
        404: {"description": "User not found", "model": ErrorResponse},
        409: {"description": "Email already exists", "model": ErrorResponse},
    },
    summary="Update a user",
)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    ensure_self_or_permission(current_user, user_id, Permission.MANAGE_USERS)
    user = await user_service.update_user(db, user_id, payload, actor=current_user)
    return UserEnvelope(user=await _detail(db, user))
