"""
E-Permitted Backend — Application Service (Intake Orchestrator)
================================================================

What:  Accepts permit applications, tracks them through their status
       lifecycle and serves them back to applicants and staff.
How:   Composes the reference allocator, the ORM and the analysis queue.
Who:   Called by the /api/permits route handlers.

Intake Flow (POST /api/permits/submit):
    ┌──────────┐    ┌────────────┐    ┌─────────────┐    ┌──────────┐    ┌──────────┐
    │ Validate │───▶│  Allocate  │───▶│   Insert    │───▶│  Commit  │───▶│ Dispatch │
    │  (FKs)   │    │ reference  │    │ (SAVEPOINT) │    │          │    │ analysis │
    └──────────┘    └────────────┘    └─────────────┘    └──────────┘    └──────────┘
                          ▲                  │
                          └── unique clash ──┘  (bounded by REFERENCE_MAX_ATTEMPTS)

    - The caller learns nothing about the AI step: dispatch happens after the
      commit and its failures are only logged.
    - The analysis worker opens its own session, so it always sees the
      committed row.

Status Lifecycle:
    DRAFT ──▶ SUBMITTED ──▶ UNDER_REVIEW ──▶ APPROVED
      │           │              │    └────▶ REJECTED
      │           │              └──▶ SUBMITTED (returned for more information)
      └───────────┴──▶ CANCELLED
"""

import logging
from typing import Dict, FrozenSet, List, Optional, Tuple, TYPE_CHECKING, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from epermitted.config import settings
from epermitted.exceptions import (
    DatabaseError,
    NotFoundError,
    ReferenceConflictError,
    ValidationError,
)
from epermitted.models import Application, ApplicationStatus, Council, PermitType, User
from epermitted.schemas.application import ApplicationSubmit
from epermitted.services.reference_service import ReferenceAllocator, reference_allocator

if TYPE_CHECKING:
    from epermitted.services.analysis_queue import AnalysisQueue

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    ApplicationStatus.DRAFT: frozenset({
        ApplicationStatus.SUBMITTED,
        ApplicationStatus.CANCELLED,
    }),
    ApplicationStatus.SUBMITTED: frozenset({
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.CANCELLED,
    }),
    ApplicationStatus.UNDER_REVIEW: frozenset({
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.SUBMITTED,
    }),
    ApplicationStatus.APPROVED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.CANCELLED: frozenset(),
}


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class ApplicationService:
    """
    Business logic for permit applications.

    Stateless apart from the allocator and retry bound it is constructed
    with; every method receives the session it works in.
    """

    def __init__(
        self,
        allocator: Optional[ReferenceAllocator] = None,
        max_attempts: Optional[int] = None,
    ):
        self.allocator = allocator or reference_allocator
        # Allocate-and-insert attempts per submission before 409
        self.max_attempts = max_attempts or settings.reference_max_attempts

    async def submit(
        self,
        db: AsyncSession,
        payload: ApplicationSubmit,
        analysis_queue: Optional["AnalysisQueue"] = None,
    ) -> Application:
        """
        Store a new application and hand it to the analysis queue.

        Workflow Steps:
            1. Resolve user, council and permit type (404 if any is missing)
            2. Check the permit type belongs to the council and is active
            3. Allocate a reference and insert inside a SAVEPOINT; a unique
               violation on the reference re-runs this step
            4. Commit
            5. Dispatch AI analysis (never fails the request)

        Raises:
            NotFoundError: unknown user, council or permit type
            ValidationError: permit type not offered by the council / inactive
            ReferenceConflictError: reference collisions outlasted every retry
            ReferenceAllocationError: sequence space for the year exhausted
        """
        user = await db.get(User, payload.user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(payload.user_id))

        council = await db.get(Council, payload.council_id)
        if council is None:
            raise NotFoundError(resource="council", resource_id=str(payload.council_id))

        permit_type = await db.get(PermitType, payload.permit_type_id)
        if permit_type is None:
            raise NotFoundError(resource="permit type", resource_id=str(payload.permit_type_id))

        if permit_type.council_id != council.id:
            raise ValidationError(
                message="Permit type is not offered by this council",
                field="permit_type_id",
            )
        if not permit_type.is_active:
            raise ValidationError(
                message="Permit type is not currently accepting applications",
                field="permit_type_id",
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception_type(ReferenceConflictError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                application = await self._insert(db, payload, council)

        await db.commit()
        logger.info(
            "Application %s submitted by user %s to %s (%s)",
            application.reference,
            user.id,
            council.code,
            permit_type.code,
        )

        if analysis_queue is not None:
            try:
                await analysis_queue.submit(application.id)
            except Exception:
                logger.exception(
                    "Could not dispatch analysis for application %s",
                    application.reference,
                )

        return application

    async def _insert(
        self,
        db: AsyncSession,
        payload: ApplicationSubmit,
        council: Council,
    ) -> Application:
        reference = await self.allocator.allocate(db, council.code)
        application = Application(
            reference=reference,
            status=ApplicationStatus.SUBMITTED,
            user_id=payload.user_id,
            council_id=council.id,
            permit_type_id=payload.permit_type_id,
            data=payload.data,
        )
        try:
            async with db.begin_nested():
                db.add(application)
        except IntegrityError as e:
            logger.warning("Reference %s already taken; re-allocating", reference)
            raise ReferenceConflictError(reference=reference) from e
        return application

    async def get_application(
        self, db: AsyncSession, application_id: Union[UUID, str]
    ) -> Application:
        """
        Fetch one application with its council, permit type and applicant.

        Ids arrive from the URL as opaque strings; one that is not a UUID
        cannot name an application, so it is reported as not found.

        Raises:
            NotFoundError: no application with that id (→ 404)
        """
        try:
            key = application_id if isinstance(application_id, UUID) else UUID(str(application_id))
        except ValueError:
            raise NotFoundError(resource="application", resource_id=str(application_id))

        result = await db.execute(
            select(Application)
            .where(Application.id == key)
            .execution_options(populate_existing=True)
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise NotFoundError(resource="application", resource_id=str(application_id))
        return application

    async def list_applications(
        self,
        db: AsyncSession,
        user_id: Optional[UUID] = None,
        council_id: Optional[UUID] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Application], int]:
        """
        Newest-first listing for staff, with optional filters.

        Returns:
            (applications on this page, total matching count)
        """
        filters = []
        if user_id is not None:
            filters.append(Application.user_id == user_id)
        if council_id is not None:
            filters.append(Application.council_id == council_id)
        if status is not None:
            filters.append(Application.status == status)

        try:
            result = await db.execute(
                select(Application)
                .where(*filters)
                .order_by(Application.submitted_at.desc(), Application.reference.desc())
                .limit(limit)
                .offset(offset)
            )
            applications = list(result.scalars().all())

            count_result = await db.execute(
                select(func.count(Application.id)).where(*filters)
            )
            total = count_result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing applications: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve applications. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return applications, total

    async def list_permit_types(
        self,
        db: AsyncSession,
        council_id: Optional[UUID] = None,
    ) -> List[PermitType]:
        """Active permit types, optionally restricted to one council."""
        query = select(PermitType).where(PermitType.is_active.is_(True))
        if council_id is not None:
            query = query.where(PermitType.council_id == council_id)
        result = await db.execute(query.order_by(PermitType.name))
        return list(result.scalars().all())

    async def update_status(
        self,
        db: AsyncSession,
        application_id: Union[UUID, str],
        new_status: ApplicationStatus,
        actor: Optional[User] = None,
    ) -> Application:
        """
        Move an application to `new_status` if the lifecycle allows it.

        Raises:
            NotFoundError: unknown application
            ValidationError: transition not allowed from the current status
        """
        application = await self.get_application(db, application_id)
        current = application.status

        if not can_transition(current, new_status):
            raise ValidationError(
                message=f"Cannot change status from {current.value} to {new_status.value}",
                field="status",
                context={"reference": application.reference},
            )

        application.status = new_status
        await db.flush()
        await db.refresh(application)
        logger.info(
            "Application %s status %s → %s by %s",
            application.reference,
            current.value,
            new_status.value,
            actor.email if actor else "system",
        )
        return application


# ── Singleton Instance ────────────────────────────────────────────────────
application_service = ApplicationService()
