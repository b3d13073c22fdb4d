"""
E-Permitted Backend — Seed Script Tests
========================================
"""

import pytest
from sqlalchemy import func, select

from epermitted.models import Application, Council, PermitType, User
from epermitted.seed import (
    DEMO_ADMIN,
    DEMO_CITIZEN,
    PERMIT_TYPES,
    seed_council,
    seed_sample_application,
    seed_user,
)


async def count(database, model):
    async with database.session() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


class TestSeed:

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, database):
        for _ in range(2):
            async with database.session() as session:
                await seed_council(session)
                await seed_user(session, DEMO_CITIZEN, "password123")
                await seed_user(session, DEMO_ADMIN, "admin12345")

        assert await count(database, Council) == 1
        assert await count(database, PermitType) == len(PERMIT_TYPES)
        assert await count(database, User) == 2

    @pytest.mark.asyncio
    async def test_sample_application_gets_reference(self, database):
        async with database.session() as session:
            council = await seed_council(session)
            citizen = await seed_user(session, DEMO_CITIZEN, "password123")
            await seed_sample_application(session, council, citizen)

        async with database.session() as session:
            council = (await session.execute(select(Council))).scalar_one()
            citizen = (await session.execute(select(User))).scalar_one()
            await seed_sample_application(session, council, citizen)

        async with database.session() as session:
            references = (await session.execute(select(Application.reference))).scalars().all()
        assert len(references) == 1
        assert references[0].startswith("KCDC-")
