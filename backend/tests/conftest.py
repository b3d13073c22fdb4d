"""
E-Permitted Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets a fresh SQLite database file (aiosqlite) and an app
       wired to it with a fake LLM service, so no network or PostgreSQL is
       needed.

Fixture Hierarchy (all function-scoped):
    database ─┬─ analysis_queue ── app ── test_client
              ├─ council / permit_type
              └─ citizen / staff / admin
    fake_llm ─┘

Sessions are opened and closed inside helpers; a test never holds a session
open across an API call, because SQLite transactions here take the write
lock immediately.
"""

import os
import tempfile

# Override settings BEFORE any application import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="epermitted_test_"), "import.db"
)
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["JWT_SECRET"] = "test-secret-for-the-suite-0123456789abcdef"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ANALYSIS_ENABLED"] = "false"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from epermitted.config import settings
from epermitted.database import Database
from epermitted.models import Council, PermitType, User
from epermitted.permissions import Role
from epermitted.security import create_access_token, hash_password
from epermitted.services.analysis_queue import AnalysisQueue
from epermitted.services.llm_base import LLMService

TEST_PASSWORD = "correct-horse-battery"


class FakeLLMService(LLMService):
    """Records prompts; returns `response` or raises `error`."""

    model_name = "fake-model"

    def __init__(self, response: str = "Application looks complete. Risk: low.",
                 error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []
        self.healthy = True

    async def generate_analysis(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response

    async def health_check(self) -> bool:
        return self.healthy


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

async def create_user(
    database: Database,
    email: str,
    role: Role = Role.CITIZEN,
    password: Optional[str] = TEST_PASSWORD,
    is_active: bool = True,
) -> User:
    async with database.session() as session:
        user = User(
            email=email,
            password_hash=hash_password(password, rounds=4) if password else None,
            first_name="Test",
            last_name=role.value.capitalize(),
            role=role,
            is_active=is_active,
        )
        session.add(user)
    return user


async def create_council(database: Database, code: str = "KCDC", name: Optional[str] = None) -> Council:
    async with database.session() as session:
        council = Council(
            name=name or f"{code} District Council",
            code=code,
            country="NZ",
            region="Wellington",
            permit_types=[],
        )
        session.add(council)
    return council


async def create_permit_type(
    database: Database,
    council: Council,
    code: str = "BUILDING",
    is_active: bool = True,
) -> PermitType:
    async with database.session() as session:
        permit_type = PermitType(
            council_id=council.id,
            name=f"{code.capitalize()} Consent",
            code=code,
            requirements={"sitePlan": True},
            fees={"baseFee": 2500},
            is_active=is_active,
        )
        session.add(permit_type)
    return permit_type


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def submission(user: User, council: Council, permit_type: PermitType, **data) -> Dict:
    return {
        "user_id": str(user.id),
        "council_id": str(council.id),
        "permit_type_id": str(permit_type.id),
        "data": data or {"project": {"type": "New dwelling", "floorArea": 180}},
    }


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database(tmp_path):
    """A fresh SQLite database with every table created."""
    db = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def fake_llm():
    return FakeLLMService()


@pytest_asyncio.fixture
async def analysis_queue(database, fake_llm):
    queue = AnalysisQueue(database, fake_llm, enabled=True)
    yield queue
    await queue.drain(timeout=10)


@pytest_asyncio.fixture
async def app(database, fake_llm, analysis_queue):
    from epermitted.main import create_app

    return create_app(
        config=settings,
        database=database,
        llm_service=fake_llm,
        analysis_queue=analysis_queue,
    )


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient routed straight into the app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def council(database):
    return await create_council(database, "KCDC", "Kapiti Coast District Council")


@pytest_asyncio.fixture
async def permit_type(database, council):
    return await create_permit_type(database, council, "BUILDING")


@pytest_asyncio.fixture
async def citizen(database):
    return await create_user(database, "citizen@example.com", Role.CITIZEN)


@pytest_asyncio.fixture
async def staff(database):
    return await create_user(database, "staff@example.com", Role.STAFF)


@pytest_asyncio.fixture
async def admin(database):
    return await create_user(database, "admin@example.com", Role.ADMIN)
