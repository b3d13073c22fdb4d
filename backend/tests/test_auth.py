"""
E-Permitted Backend — Authentication Tests
===========================================

What we test:
    ✅ Registration creates an active citizen; duplicates are rejected (409)
    ✅ Login issues a token carrying sub/email/role
    ✅ Wrong password and inactive accounts never receive a token
    ✅ Each kind of bad bearer token maps to its own 401 message
    ✅ Deactivation takes effect on the next request
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import func, select

from epermitted.config import settings
from epermitted.models import User
from epermitted.permissions import Role
from epermitted.security import decode_access_token, hash_password, verify_password

from conftest import TEST_PASSWORD, auth_headers, create_user

REGISTRATION = {
    "email": "Jane.Citizen@Example.com",
    "password": "s3cure-passphrase",
    "first_name": "Jane",
    "last_name": "Citizen",
    "phone": "+64 21 555 0101",
}


async def count_users(database, email):
    async with database.session() as session:
        result = await session.execute(select(func.count(User.id)).where(User.email == email))
        return result.scalar()


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("hunter2-but-longer")
        assert hashed != "hunter2-but-longer"
        assert verify_password("hunter2-but-longer", hashed)
        assert not verify_password("wrong", hashed)

    def test_missing_or_malformed_hash(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_creates_citizen(self, test_client, database):
        response = await test_client.post("/api/auth/register", json=REGISTRATION)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["user"]["email"] == "jane.citizen@example.com"
        assert body["user"]["role"] == "citizen"
        assert body["user"]["is_active"] is True
        assert "password_hash" not in body["user"]
        assert await count_users(database, "jane.citizen@example.com") == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_is_rejected(self, test_client, database):
        first = await test_client.post("/api/auth/register", json=REGISTRATION)
        second = await test_client.post(
            "/api/auth/register",
            json={**REGISTRATION, "email": "JANE.CITIZEN@example.com", "first_name": "Other"},
        )

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"] == "Email already registered"
        assert second.json()["success"] is False
        assert await count_users(database, "jane.citizen@example.com") == 1

    @pytest.mark.asyncio
    async def test_short_password(self, test_client):
        response = await test_client.post(
            "/api/auth/register", json={**REGISTRATION, "password": "short"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation error"
        assert body["code"] == "validation_error"
        assert any(d["field"] == "password" for d in body["details"])

    @pytest.mark.asyncio
    async def test_invalid_email(self, test_client):
        response = await test_client.post(
            "/api/auth/register", json={**REGISTRATION, "email": "not-an-email"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_register_cannot_choose_role(self, test_client):
        response = await test_client.post(
            "/api/auth/register", json={**REGISTRATION, "role": "admin"}
        )
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "citizen"


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_returns_token(self, test_client, citizen):
        response = await test_client.post(
            "/api/auth/login",
            json={"email": "Citizen@Example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["id"] == str(citizen.id)
        assert body["user"]["last_login_at"] is not None

        claims = decode_access_token(body["token"])
        assert claims["sub"] == str(citizen.id)
        assert claims["email"] == "citizen@example.com"
        assert claims["role"] == "citizen"

    @pytest.mark.asyncio
    async def test_register_then_login(self, test_client):
        await test_client.post("/api/auth/register", json=REGISTRATION)
        response = await test_client.post(
            "/api/auth/login",
            json={"email": REGISTRATION["email"], "password": REGISTRATION["password"]},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_password(self, test_client, citizen):
        response = await test_client.post(
            "/api/auth/login",
            json={"email": "citizen@example.com", "password": "not-the-password"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid credentials"
        assert "token" not in response.json()

    @pytest.mark.asyncio
    async def test_unknown_email(self, test_client):
        response = await test_client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_inactive_account(self, test_client, database):
        await create_user(database, "retired@example.com", is_active=False)

        response = await test_client.post(
            "/api/auth/login",
            json={"email": "retired@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Account is inactive"
        assert "token" not in response.json()

    @pytest.mark.asyncio
    async def test_inactive_account_is_reported_before_password_check(
        self, test_client, database
    ):
        await create_user(database, "suspended@example.com", is_active=False)

        response = await test_client.post(
            "/api/auth/login",
            json={"email": "suspended@example.com", "password": "wrong-password!"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Account is inactive"
        assert response.json()["code"] == "account_inactive"
        assert "token" not in response.json()

    @pytest.mark.asyncio
    async def test_account_without_password_cannot_log_in(self, test_client, database):
        await create_user(database, "invited@example.com", Role.STAFF, password=None)

        response = await test_client.post(
            "/api/auth/login",
            json={"email": "invited@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid credentials"


class TestBearerTokens:

    @pytest.mark.asyncio
    async def test_no_token(self, test_client):
        response = await test_client.get("/api/users/profile")

        assert response.status_code == 401
        assert response.json()["error"] == "No token provided"

    @pytest.mark.asyncio
    async def test_wrong_scheme(self, test_client, citizen):
        token = auth_headers(citizen)["Authorization"].split(" ", 1)[1]
        response = await test_client.get(
            "/api/users/profile", headers={"Authorization": f"Token {token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token format"

    @pytest.mark.asyncio
    async def test_expired_token(self, test_client, citizen):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": str(citizen.id),
                "email": citizen.email,
                "role": "citizen",
                "iat": past - timedelta(hours=1),
                "exp": past,
            },
            settings.jwt_secret,
            algorithm="HS256",
        )
        response = await test_client.get(
            "/api/users/profile", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Token expired"

    @pytest.mark.asyncio
    async def test_bad_signature(self, test_client, citizen):
        token = jwt.encode(
            {
                "sub": str(citizen.id),
                "exp": datetime.now(timezone.utc) + timedelta(hours=1),
            },
            "some-other-secret-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )
        response = await test_client.get(
            "/api/users/profile", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_garbage_token(self, test_client):
        response = await test_client.get(
            "/api/users/profile", headers={"Authorization": "Bearer not.a.jwt"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_token_for_deactivated_user(self, test_client, database, citizen):
        headers = auth_headers(citizen)
        async with database.session() as session:
            user = await session.get(User, citizen.id)
            user.is_active = False

        response = await test_client.get("/api/users/profile", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"] == "User not found or inactive"

    @pytest.mark.asyncio
    async def test_token_for_unknown_user(self, test_client, citizen):
        ghost = User(id=uuid.uuid4(), email="ghost@example.com", role=Role.CITIZEN)
        response = await test_client.get("/api/users/profile", headers=auth_headers(ghost))

        assert response.status_code == 401
        assert response.json()["error"] == "User not found or inactive"

    @pytest.mark.asyncio
    async def test_valid_token(self, test_client, citizen):
        response = await test_client.get("/api/users/profile", headers=auth_headers(citizen))

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "citizen@example.com"
