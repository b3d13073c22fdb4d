"""
E-Permitted Backend — Health & Error Envelope Tests
====================================================
"""

import logging

import pytest

from epermitted.main import create_app, status_code_for
from epermitted.exceptions import (
    CircuitBreakerOpenError,
    ConflictError,
    LLMServiceError,
    NotFoundError,
    ReferenceAllocationError,
    ReferenceConflictError,
    ValidationError,
)
from epermitted.services.analysis_queue import AnalysisQueue

from httpx import AsyncClient, ASGITransport

from conftest import auth_headers


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_check_returns_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["llm"] == "available"
        assert data["version"] == "1.0.0"
        assert data["analysis_queue"]["enabled"] is True
        assert data["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_unreachable_llm_degrades(self, test_client, fake_llm):
        fake_llm.healthy = False

        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["llm"] == "unavailable"

    @pytest.mark.asyncio
    async def test_analysis_disabled(self, database, fake_llm):
        app = create_app(
            database=database,
            llm_service=fake_llm,
            analysis_queue=AnalysisQueue(database, fake_llm, enabled=False),
        )
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")

        assert response.json()["llm"] == "disabled"
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_database_down(self, app, database, monkeypatch):
        async def ping():
            return False

        monkeypatch.setattr(database, "ping", ping)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


class TestErrorEnvelope:

    @pytest.mark.asyncio
    async def test_unknown_route(self, test_client):
        response = await test_client.get("/api/nothing-here")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_client_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_status_codes(self):
        assert status_code_for(ValidationError("bad")) == 400
        assert status_code_for(NotFoundError("council")) == 404
        assert status_code_for(ConflictError()) == 409
        assert status_code_for(ReferenceConflictError("KCDC-2024-00001")) == 409
        assert status_code_for(ReferenceAllocationError()) == 500

    @pytest.mark.asyncio
    async def test_open_circuit_advertises_retry_after(self, app, test_client):
        async def tripped():
            raise CircuitBreakerOpenError(recovery_time=45)

        app.add_api_route("/api/tripped", tripped)
        response = await test_client.get("/api/tripped")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "45"
        assert response.json()["code"] == "service_unavailable"

    @pytest.mark.asyncio
    async def test_llm_error_without_hint_has_no_retry_after(self, app, test_client):
        async def failing():
            raise LLMServiceError()

        app.add_api_route("/api/failing", failing)
        response = await test_client.get("/api/failing")

        assert response.status_code == 503
        assert "Retry-After" not in response.headers


class TestAccessLog:

    @staticmethod
    def access_records(caplog, path):
        return [
            r for r in caplog.records
            if r.name == "epermitted.access" and getattr(r, "path", None) == path
        ]

    @pytest.mark.asyncio
    async def test_authenticated_request_names_the_user(self, test_client, staff, caplog):
        caplog.set_level(logging.INFO, logger="epermitted.access")

        await test_client.get("/api/permits", headers=auth_headers(staff))

        (record,) = self.access_records(caplog, "/api/permits")
        assert record.user_id == str(staff.id)
        assert record.user_role == "staff"
        assert record.status == 200
        assert f"user={staff.id}(staff)" in record.getMessage()

    @pytest.mark.asyncio
    async def test_unauthenticated_request_is_anonymous(self, test_client, caplog):
        caplog.set_level(logging.INFO, logger="epermitted.access")

        await test_client.get("/api/councils")

        (record,) = self.access_records(caplog, "/api/councils")
        assert record.user_id is None
        assert "user=anonymous" in record.getMessage()

    @pytest.mark.asyncio
    async def test_health_probes_are_not_logged(self, test_client, caplog):
        caplog.set_level(logging.INFO, logger="epermitted.access")

        await test_client.get("/health")

        assert self.access_records(caplog, "/health") == []
