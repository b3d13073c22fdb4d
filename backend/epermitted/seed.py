"""Seed the database with a demo council, its permit types and two accounts.

Usage:
    cd backend
    python -m epermitted.seed [--create-tables] [--with-sample-application]

Idempotent: existing rows (matched by council code, permit type code and
email) are left untouched, so the script can run on every deploy.
"""

import argparse
import asyncio
import logging
import os
from typing import Any, Dict, List

from sqlalchemy import select

from epermitted.database import Database
from epermitted.models import Application, Council, PermitType, User
from epermitted.permissions import Role
from epermitted.schemas.application import ApplicationSubmit
from epermitted.security import hash_password
from epermitted.services.application_service import application_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("epermitted.seed")

COUNCIL = {
    "name": "Kapiti Coast District Council",
    "code": "KCDC",
    "country": "NZ",
    "region": "Wellington",
}

PERMIT_TYPES: List[Dict[str, Any]] = [
    {
        "name": "Building Consent",
        "code": "BUILDING",
        "description": "Consent for new buildings, alterations, or additions",
        "requirements": {
            "sitePlan": True,
            "floorPlan": True,
            "structuralDetails": True,
            "drainagePlan": True,
        },
        "fees": {"baseFee": 2500, "perSquareMeter": 15, "minimumFee": 2500},
    },
    {
        "name": "Resource Consent",
        "code": "RESOURCE",
        "description": "Consent for land use activities and developments",
        "requirements": {
            "sitePlan": True,
            "environmentalAssessment": True,
            "trafficImpact": True,
            "noiseAssessment": False,
        },
        "fees": {"baseFee": 3000, "perHectare": 500, "minimumFee": 3000},
    },
    {
        "name": "Demolition Consent",
        "code": "DEMOLITION",
        "description": "Consent for demolition of buildings or structures",
        "requirements": {
            "sitePlan": True,
            "demolitionPlan": True,
            "wasteManagement": True,
            "safetyPlan": True,
        },
        "fees": {"baseFee": 1500, "perSquareMeter": 5, "minimumFee": 1500},
    },
    {
        "name": "Fence Consent",
        "code": "FENCE",
        "description": "Consent for fence construction or modification",
        "requirements": {
            "sitePlan": True,
            "fenceSpecifications": True,
            "neighborConsent": False,
        },
        "fees": {"baseFee": 800, "perMeter": 25, "minimumFee": 800},
    },
]

DEMO_CITIZEN = {
    "email": "test@example.com",
    "first_name": "John",
    "last_name": "Doe",
    "phone": "+64 21 123 4567",
    "address": {
        "street": "123 Main Street",
        "city": "Paraparaumu",
        "postalCode": "5032",
        "region": "Wellington",
        "country": "NZ",
    },
    "role": Role.CITIZEN,
}

DEMO_ADMIN = {
    "email": "admin@example.com",
    "first_name": "Council",
    "last_name": "Administrator",
    "role": Role.ADMIN,
}

SAMPLE_APPLICATION_DATA = {
    "applicant": {
        "firstName": "John",
        "lastName": "Doe",
        "email": "test@example.com",
        "phone": "+64 21 123 4567",
    },
    "property": {
        "address": "123 Main Street, Paraparaumu",
        "legalDescription": "Lot 1 DP 123456",
        "zone": "Residential",
    },
    "project": {
        "type": "New dwelling",
        "description": "Construction of a 3-bedroom house with attached garage",
        "estimatedValue": 450000,
        "floorArea": 180,
    },
    "documents": ["site-plan.pdf", "floor-plan.pdf", "structural-details.pdf"],
}


async def seed_council(session) -> Council:
    result = await session.execute(select(Council).where(Council.code == COUNCIL["code"]))
    council = result.scalar_one_or_none()
    if council is None:
        council = Council(**COUNCIL, permit_types=[])
        session.add(council)
        await session.flush()
        logger.info("Created council: %s", council.name)
    else:
        logger.info("Council %s already present", council.code)

    existing = {pt.code for pt in council.permit_types}
    for fields in PERMIT_TYPES:
        if fields["code"] in existing:
            continue
        session.add(PermitType(council=council, is_active=True, **fields))
        logger.info("Created permit type: %s", fields["name"])
    await session.flush()
    return council


async def seed_user(session, fields: Dict[str, Any], password: str) -> User:
    result = await session.execute(select(User).where(User.email == fields["email"]))
    user = result.scalar_one_or_none()
    if user is not None:
        logger.info("User %s already present", user.email)
        return user

    user = User(password_hash=hash_password(password), is_active=True, **fields)
    session.add(user)
    await session.flush()
    logger.info("Created %s account: %s", user.role.value, user.email)
    return user


async def seed_sample_application(session, council: Council, citizen: User) -> None:
    result = await session.execute(
        select(Application.id).where(Application.user_id == citizen.id).limit(1)
    )
    if result.first() is not None:
        logger.info("Sample application already present")
        return

    building = next(pt for pt in council.permit_types if pt.code == "BUILDING")
    application = await application_service.submit(
        session,
        ApplicationSubmit(
            user_id=citizen.id,
            council_id=council.id,
            permit_type_id=building.id,
            data=SAMPLE_APPLICATION_DATA,
        ),
    )
    logger.info("Created sample application: %s", application.reference)


async def main(create_tables: bool, with_sample: bool) -> None:
    database = Database()
    try:
        if create_tables:
            await database.create_all()

        async with database.session() as session:
            council = await seed_council(session)
            await session.refresh(council)
            citizen = await seed_user(
                session, DEMO_CITIZEN, os.getenv("SEED_CITIZEN_PASSWORD", "password123")
            )
            admin = await seed_user(
                session, DEMO_ADMIN, os.getenv("SEED_ADMIN_PASSWORD", "admin12345")
            )
            if with_sample:
                await seed_sample_application(session, council, citizen)

        logger.info("Seeding complete")
        logger.info("- Council: %s (%s)", council.name, council.code)
        logger.info("- Permit types: %d", len(PERMIT_TYPES))
        logger.info("- Users: %s, %s", citizen.email, admin.email)
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo council data")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables from ORM metadata first (development databases)",
    )
    parser.add_argument(
        "--with-sample-application",
        action="store_true",
        help="Also submit a sample building consent for the demo citizen",
    )
    args = parser.parse_args()
    asyncio.run(main(args.create_tables, args.with_sample_application))
