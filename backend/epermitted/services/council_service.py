"""
E-Permitted Backend — Council Service
======================================

What:  CRUD for councils and their permit types.
How:   Uniqueness (council code; permit type code within a council) is
       enforced by database constraints; violations become 409 Conflict.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from epermitted.exceptions import ConflictError, NotFoundError
from epermitted.models import Council, PermitType
from epermitted.schemas.council import (
    CouncilCreate,
    CouncilUpdate,
    PermitTypeCreate,
    PermitTypeUpdate,
)

logger = logging.getLogger(__name__)


class CouncilService:

    async def list_councils(self, db: AsyncSession) -> List[Council]:
        result = await db.execute(select(Council).order_by(Council.name))
        return list(result.scalars().all())

    async def get_council(self, db: AsyncSession, council_id: UUID) -> Council:
        council = await db.get(Council, council_id)
        if council is None:
            raise NotFoundError(resource="council", resource_id=str(council_id))
        return council

    async def create_council(self, db: AsyncSession, payload: CouncilCreate) -> Council:
        council = Council(
            name=payload.name,
            code=payload.code,
            country=payload.country,
            region=payload.region,
            permit_types=[],
        )
        try:
            async with db.begin_nested():
                db.add(council)
        except IntegrityError:
            raise ConflictError(
                f"Council code {payload.code} is already in use",
                context={"code": payload.code},
            )
        logger.info("Created council %s (%s)", council.code, council.name)
        return council

    async def update_council(
        self,
        db: AsyncSession,
        council_id: UUID,
        payload: CouncilUpdate,
    ) -> Council:
        council = await self.get_council(db, council_id)
        for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(council, field, value.upper() if field == "country" else value)
        await db.flush()
        logger.info("Updated council %s", council.code)
        return council

    async def get_permit_type(self, db: AsyncSession, permit_type_id: UUID) -> PermitType:
        permit_type = await db.get(PermitType, permit_type_id)
        if permit_type is None:
            raise NotFoundError(resource="permit type", resource_id=str(permit_type_id))
        return permit_type

    async def create_permit_type(self, db: AsyncSession, payload: PermitTypeCreate) -> PermitType:
        council = await self.get_council(db, payload.council_id)
        permit_type = PermitType(
            council_id=council.id,
            name=payload.name,
            code=payload.code,
            description=payload.description,
            requirements=payload.requirements,
            fees=payload.fees,
            is_active=payload.is_active,
        )
        try:
            async with db.begin_nested():
                db.add(permit_type)
        except IntegrityError:
            raise ConflictError(
                f"Permit type {payload.code} already exists for {council.code}",
                context={"code": payload.code, "council": council.code},
            )
        logger.info("Created permit type %s for %s", permit_type.code, council.code)
        return permit_type

    async def update_permit_type(
        self,
        db: AsyncSession,
        permit_type_id: UUID,
        payload: PermitTypeUpdate,
    ) -> PermitType:
        permit_type = await self.get_permit_type(db, permit_type_id)
        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None and field in ("name", "is_active"):
                continue
            setattr(permit_type, field, value)
        await db.flush()
        logger.info("Updated permit type %s (%s)", permit_type.code, ", ".join(sorted(changes)))
        return permit_type


council_service = CouncilService()
