"""
E-Permitted Backend — Council Route Handlers
=============================================

GET  /api/councils        public; each council with its active permit types
GET  /api/councils/{id}   public
POST /api/councils        MANAGE_COUNCILS (409 on duplicate code)
PUT  /api/councils/{id}   MANAGE_COUNCILS
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.auth import require_permission
from epermitted.database import get_db_session
from epermitted.models import User
from epermitted.permissions import Permission
from epermitted.schemas.common import DataResponse, ErrorResponse
from epermitted.schemas.council import CouncilCreate, CouncilResponse, CouncilUpdate
from epermitted.services.council_service import council_service

router = APIRouter(prefix="/api/councils", tags=["Councils"])


@router.get(
    "",
    response_model=DataResponse[List[CouncilResponse]],
    summary="List councils and the permits they accept",
)
async def list_councils(
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[List[CouncilResponse]]:
    councils = await council_service.list_councils(db)
    return DataResponse[List[CouncilResponse]](
        data=[CouncilResponse.from_council(c) for c in councils]
    )


@router.get(
    "/{council_id}",
    response_model=DataResponse[CouncilResponse],
    responses={404: {"description": "Council not found", "model": ErrorResponse}},
    summary="Get one council",
)
async def get_council(
    council_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CouncilResponse]:
    council = await council_service.get_council(db, council_id)
    return DataResponse[CouncilResponse](data=CouncilResponse.from_council(council))


@router.post(
    "",
    status_code=201,
    response_model=DataResponse[CouncilResponse],
    responses={
        403: {"description": "Insufficient permissions", "model": ErrorResponse},
        409: {"description": "Council code already in use", "model": ErrorResponse},
    },
    summary="Create a council",
)
async def create_council(
    payload: CouncilCreate,
    _: User = Depends(require_permission(Permission.MANAGE_COUNCILS)),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CouncilResponse]:
    council = await council_service.create_council(db, payload)
    return DataResponse[CouncilResponse](data=CouncilResponse.from_council(council))


@router.put(
    "/{council_id}",
    response_model=DataResponse[CouncilResponse],
    responses={
        403: {"description": "Insufficient permissions", "model": ErrorResponse},
        404: {"description": "Council not found", "model": ErrorResponse},
    },
    summary="Update a council",
)
async def update_council(
    council_id: UUID,
    payload: CouncilUpdate,
    _: User = Depends(require_permission(Permission.MANAGE_COUNCILS)),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CouncilResponse]:
    council = await council_service.update_council(db, council_id, payload)
    return DataResponse[CouncilResponse](data=CouncilResponse.from_council(council))
