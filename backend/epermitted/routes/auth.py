"""
E-Permitted Backend — Auth Route Handlers
==========================================

POST /api/auth/register → 201 {success, user}
POST /api/auth/login    → 200 {success, token, user}
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.database import get_db_session
from epermitted.schemas.auth import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from epermitted.schemas.common import ErrorResponse
from epermitted.schemas.user import UserResponse
from epermitted.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=RegisterResponse,
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Register a citizen account",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> RegisterResponse:
    user = await auth_service.register(db, payload)
    return RegisterResponse(user=UserResponse.model_validate(user))


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        401: {"description": "Invalid credentials or inactive account", "model": ErrorResponse},
    },
    summary="Exchange email and password for a bearer token",
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> LoginResponse:
    token, user = await auth_service.login(db, payload)
    return LoginResponse(token=token, user=UserResponse.model_validate(user))
