"""
E-Permitted Backend — Permit Route Handlers
============================================

What:  Intake, lookup and review of permit applications, plus the permit
       type catalogue.
How:   Thin handlers; ApplicationService and CouncilService do the work.

Route Inventory:
    GET   /api/permits/types          public, `?council_id=` filter
    POST  /api/permits/types          MANAGE_COUNCILS
    PUT   /api/permits/types/{id}     MANAGE_COUNCILS
    POST  /api/permits/submit         intake → 201 {id, reference, status, submitted_at}
    GET   /api/permits                REVIEW_APPLICATIONS, filters + paging
    GET   /api/permits/{id}           application detail incl. ai_analysis
    PATCH /api/permits/{id}/status    REVIEW_APPLICATIONS, lifecycle-checked

Caching:
    Submissions and status changes are never cached; application detail
    changes when the AI review lands, so it is `no-store` as well.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.auth import require_permission
from epermitted.database import get_db_session
from epermitted.models import ApplicationStatus, User
from epermitted.permissions import Permission
from epermitted.schemas.application import (
    ApplicationResponse,
    ApplicationSubmit,
    ApplicationSummary,
    StatusUpdateRequest,
    SubmitResult,
)
from epermitted.schemas.common import DataResponse, ErrorResponse, ListResponse
from epermitted.schemas.council import PermitTypeCreate, PermitTypeResponse, PermitTypeUpdate
from epermitted.services.analysis_queue import AnalysisQueue
from epermitted.services.application_service import ApplicationService, application_service
from epermitted.services.council_service import council_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/permits", tags=["Permits"])


def get_analysis_queue(request: Request) -> Optional[AnalysisQueue]:
    return getattr(request.app.state, "analysis_queue", None)


def get_application_service(request: Request) -> ApplicationService:
    return getattr(request.app.state, "application_service", application_service)


# ══════════════════════════════════════════════════════════════════════════
# Permit Types
# ══════════════════════════════════════════════════════════════════════════

@router.get(
    "/types",
    response_model=DataResponse[List[PermitTypeResponse]],
    summary="List active permit types",
)
async def list_permit_types(
    council_id: Optional[UUID] = Query(default=None, description="Only this council's types"),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[List[PermitTypeResponse]]:
    permit_types = await application_service.list_permit_types(db, council_id=council_id)
    return DataResponse[List[PermitTypeResponse]](
        data=[PermitTypeResponse.model_validate(pt) for pt in permit_types]
    )


@router.post(
    "/types",
    status_code=201,
    response_model=DataResponse[PermitTypeResponse],
    responses={
        403: {"description": "Insufficient permissions", "model": ErrorResponse},
        404: {"description": "Council not found", "model": ErrorResponse},
        409: {"description": "Code already used by this council", "model": ErrorResponse},
    },
    summary="Create a permit type",
)
async def create_permit_type(
    payload: PermitTypeCreate,
    _: User = Depends(require_permission(Permission.MANAGE_COUNCILS)),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[PermitTypeResponse]:
    permit_type = await council_service.create_permit_type(db, payload)
    return DataResponse[PermitTypeResponse](data=PermitTypeResponse.model_validate(permit_type))


@router.put(
    "/types/{permit_type_id}",
    response_model=DataResponse[PermitTypeResponse],
    responses={
        403: {"description": "Insufficient permissions", "model": ErrorResponse},
        404: {"description": "Permit type not found", "model": ErrorResponse},
    },
    summary="Update a permit type",
)
async def update_permit_type(
    permit_type_id: UUID,
    payload: PermitTypeUpdate,
    _: User = Depends(require_permission(Permission.MANAGE_COUNCILS)),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[PermitTypeResponse]:
    permit_type = await council_service.update_permit_type(db, permit_type_id, payload)
    return DataResponse[PermitTypeResponse](data=PermitTypeResponse.model_validate(permit_type))


# ══════════════════════════════════════════════════════════════════════════
# Applications
# ══════════════════════════════════════════════════════════════════════════

@router.post(
    "/submit",
    status_code=201,
    response_model=DataResponse[SubmitResult],
    responses={
        400: {"description": "Invalid payload", "model": ErrorResponse},
        404: {"description": "Unknown user, council or permit type", "model": ErrorResponse},
        409: {"description": "Reference allocation conflict", "model": ErrorResponse},
    },
    summary="Submit a permit application",
    description=(
        "Stores the application with a new `<COUNCIL>-<YEAR>-<NNNNN>` reference and "
        "status SUBMITTED. AI analysis runs in the background and is visible on "
        "GET /api/permits/{id} once complete."
    ),
)
async def submit_application(
    payload: ApplicationSubmit,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    analysis_queue: Optional[AnalysisQueue] = Depends(get_analysis_queue),
    service: ApplicationService = Depends(get_application_service),
) -> DataResponse[SubmitResult]:
    application = await service.submit(db, payload, analysis_queue)
    response.headers["Cache-Control"] = "no-store"
    return DataResponse[SubmitResult](data=SubmitResult.model_validate(application))


@router.get(
    "",
    response_model=ListResponse[ApplicationSummary],
    responses={403: {"description": "Insufficient permissions", "model": ErrorResponse}},
    summary="List applications (staff)",
)
async def list_applications(
    response: Response,
    council_id: Optional[UUID] = Query(default=None),
    user_id: Optional[UUID] = Query(default=None),
    status: Optional[ApplicationStatus] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _: User = Depends(require_permission(Permission.REVIEW_APPLICATIONS)),
    db: AsyncSession = Depends(get_db_session),
    service: ApplicationService = Depends(get_application_service),
) -> ListResponse[ApplicationSummary]:
    applications, total = await service.list_applications(
        db,
        user_id=user_id,
        council_id=council_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    response.headers["X-Total-Count"] = str(total)
    return ListResponse[ApplicationSummary](
        data=[ApplicationSummary.model_validate(a) for a in applications],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{application_id}",
    response_model=DataResponse[ApplicationResponse],
    responses={404: {"description": "Application not found", "model": ErrorResponse}},
    summary="Get an application",
)
async def get_application(
    application_id: str,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    service: ApplicationService = Depends(get_application_service),
) -> DataResponse[ApplicationResponse]:
    application = await service.get_application(db, application_id)
    response.headers["Cache-Control"] = "no-store"
    return DataResponse[ApplicationResponse](data=ApplicationResponse.model_validate(application))


@router.patch(
    "/{application_id}/status",
    response_model=DataResponse[ApplicationResponse],
    responses={
        400: {"description": "Transition not allowed", "model": ErrorResponse},
        403: {"description": "Insufficient permissions", "model": ErrorResponse},
        404: {"description": "Application not found", "model": ErrorResponse},
    },
    summary="Change an application's status",
)
async def update_application_status(
    application_id: str,
    payload: StatusUpdateRequest,
    reviewer: User = Depends(require_permission(Permission.REVIEW_APPLICATIONS)),
    db: AsyncSession = Depends(get_db_session),
    service: ApplicationService = Depends(get_application_service),
) -> DataResponse[ApplicationResponse]:
    application = await service.update_status(
        db, application_id, payload.status, actor=reviewer
    )
    return DataResponse[ApplicationResponse](data=ApplicationResponse.model_validate(application))
