"""
E-Permitted Backend — Permit API Integration Tests
====================================================

What:  End-to-end tests of /api/permits through the real FastAPI app.
How:   httpx AsyncClient over ASGITransport, SQLite database, fake LLM.

What we test:
    ✅ Submit → 201 with reference, status SUBMITTED
    ✅ Error envelopes: 400 validation details, 404 unknown ids
    ✅ AI analysis lands on the application after the queue drains
    ✅ AI failure is recorded, submission still succeeds
    ✅ Staff-only listing and status changes
    ✅ Permit type catalogue
"""

import re
import uuid

import pytest

from epermitted.exceptions import LLMServiceError

from conftest import auth_headers, create_permit_type, submission

REFERENCE_RE = re.compile(r"^[A-Z]+-\d{4}-\d{5}$")


async def submit(test_client, citizen, council, permit_type, **data):
    response = await test_client.post(
        "/api/permits/submit", json=submission(citizen, council, permit_type, **data)
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_returns_reference(self, test_client, citizen, council, permit_type):
        response = await test_client.post(
            "/api/permits/submit", json=submission(citizen, council, permit_type)
        )

        assert response.status_code == 201
        assert response.headers["Cache-Control"] == "no-store"
        assert "X-Request-ID" in response.headers
        body = response.json()
        assert body["success"] is True
        assert REFERENCE_RE.match(body["data"]["reference"])
        assert body["data"]["reference"].startswith("KCDC-")
        assert body["data"]["status"] == "SUBMITTED"
        assert uuid.UUID(body["data"]["id"])

    @pytest.mark.asyncio
    async def test_consecutive_submissions_increment(self, test_client, citizen, council, permit_type):
        first = await submit(test_client, citizen, council, permit_type)
        second = await submit(test_client, citizen, council, permit_type)

        assert int(second["reference"][-5:]) == int(first["reference"][-5:]) + 1

    @pytest.mark.asyncio
    async def test_missing_data_field(self, test_client, citizen, council, permit_type):
        body = submission(citizen, council, permit_type)
        del body["data"]

        response = await test_client.post("/api/permits/submit", json=body)

        assert response.status_code == 400
        error = response.json()
        assert error["success"] is False
        assert error["code"] == "validation_error"
        assert error["request_id"]
        assert {"field": "data", "message": "Field required"} in error["details"]

    @pytest.mark.asyncio
    async def test_malformed_ids(self, test_client):
        response = await test_client.post(
            "/api/permits/submit",
            json={"user_id": "1", "council_id": "2", "permit_type_id": "3", "data": {}},
        )
        assert response.status_code == 400
        fields = {d["field"] for d in response.json()["details"]}
        assert fields == {"user_id", "council_id", "permit_type_id"}

    @pytest.mark.asyncio
    async def test_data_must_be_an_object(self, test_client, citizen, council, permit_type):
        body = submission(citizen, council, permit_type)
        body["data"] = ["not", "an", "object"]

        response = await test_client.post("/api/permits/submit", json=body)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_council(self, test_client, citizen, council, permit_type):
        body = submission(citizen, council, permit_type)
        body["council_id"] = str(uuid.uuid4())

        response = await test_client.post("/api/permits/submit", json=body)

        assert response.status_code == 404
        assert response.json()["error"] == "Council not found"
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_unknown_permit_type(self, test_client, citizen, council, permit_type):
        body = submission(citizen, council, permit_type)
        body["permit_type_id"] = str(uuid.uuid4())

        response = await test_client.post("/api/permits/submit", json=body)
        assert response.status_code == 404
        assert response.json()["error"] == "Permit type not found"

    @pytest.mark.asyncio
    async def test_inactive_permit_type(self, test_client, database, citizen, council):
        retired = await create_permit_type(database, council, "SIGNAGE", is_active=False)

        response = await test_client.post(
            "/api/permits/submit", json=submission(citizen, council, retired)
        )

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "permit_type_id"


class TestAnalysis:

    @pytest.mark.asyncio
    async def test_analysis_is_attached(
        self, test_client, analysis_queue, citizen, council, permit_type
    ):
        created = await submit(test_client, citizen, council, permit_type)
        await analysis_queue.drain()

        response = await test_client.get(f"/api/permits/{created['id']}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["reference"] == created["reference"]
        assert data["council"]["code"] == "KCDC"
        assert data["permit_type"]["code"] == "BUILDING"
        assert data["user"]["email"] == "citizen@example.com"
        assert data["ai_analysis"]["analysis"] == "Application looks complete. Risk: low."
        assert data["ai_analysis"]["model"] == "fake-model"
        assert "analyzedAt" in data["ai_analysis"]

    @pytest.mark.asyncio
    async def test_analysis_failure_is_recorded(
        self, test_client, analysis_queue, fake_llm, citizen, council, permit_type
    ):
        fake_llm.error = LLMServiceError("AI analysis failed after multiple attempts.")

        created = await submit(test_client, citizen, council, permit_type)
        await analysis_queue.drain()

        data = (await test_client.get(f"/api/permits/{created['id']}")).json()["data"]
        assert data["status"] == "SUBMITTED"
        assert data["ai_analysis"]["error"] == "AI analysis failed after multiple attempts."
        assert "analyzedAt" in data["ai_analysis"]

    @pytest.mark.asyncio
    async def test_unknown_application(self, test_client):
        response = await test_client.get(f"/api/permits/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "Application not found"

    @pytest.mark.asyncio
    async def test_malformed_application_id_is_not_found(self, test_client):
        response = await test_client.get("/api/permits/nonexistent-id")

        assert response.status_code == 404
        assert response.json()["error"] == "Application not found"
        assert response.json()["code"] == "not_found"


class TestReview:

    @pytest.mark.asyncio
    async def test_citizen_cannot_list(self, test_client, citizen):
        response = await test_client.get("/api/permits", headers=auth_headers(citizen))

        assert response.status_code == 403
        assert response.json()["error"] == "Insufficient permissions"

    @pytest.mark.asyncio
    async def test_listing_requires_token(self, test_client):
        response = await test_client.get("/api/permits")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_staff_can_list(self, test_client, citizen, staff, council, permit_type):
        for _ in range(3):
            await submit(test_client, citizen, council, permit_type)

        response = await test_client.get(
            "/api/permits", params={"limit": 2}, headers=auth_headers(staff)
        )

        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "3"
        body = response.json()
        assert body["total"] == 3
        assert body["limit"] == 2
        assert len(body["data"]) == 2
        assert body["data"][0]["submitted_at"] >= body["data"][1]["submitted_at"]

    @pytest.mark.asyncio
    async def test_status_filter(self, test_client, citizen, staff, council, permit_type):
        await submit(test_client, citizen, council, permit_type)

        response = await test_client.get(
            "/api/permits", params={"status": "APPROVED"}, headers=auth_headers(staff)
        )
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_status_transitions(self, test_client, citizen, staff, council, permit_type):
        created = await submit(test_client, citizen, council, permit_type)
        url = f"/api/permits/{created['id']}/status"
        headers = auth_headers(staff)

        review = await test_client.patch(url, json={"status": "UNDER_REVIEW"}, headers=headers)
        approve = await test_client.patch(url, json={"status": "APPROVED"}, headers=headers)
        reopen = await test_client.patch(url, json={"status": "SUBMITTED"}, headers=headers)

        assert review.status_code == 200
        assert review.json()["data"]["status"] == "UNDER_REVIEW"
        assert approve.status_code == 200
        assert approve.json()["data"]["status"] == "APPROVED"
        assert reopen.status_code == 400
        assert reopen.json()["error"] == "Cannot change status from APPROVED to SUBMITTED"

    @pytest.mark.asyncio
    async def test_citizen_cannot_change_status(self, test_client, citizen, council, permit_type):
        created = await submit(test_client, citizen, council, permit_type)

        response = await test_client.patch(
            f"/api/permits/{created['id']}/status",
            json={"status": "CANCELLED"},
            headers=auth_headers(citizen),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_status_change_for_malformed_id(self, test_client, staff):
        response = await test_client.patch(
            "/api/permits/nonexistent-id/status",
            json={"status": "UNDER_REVIEW"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_status_value(self, test_client, citizen, staff, council, permit_type):
        created = await submit(test_client, citizen, council, permit_type)

        response = await test_client.patch(
            f"/api/permits/{created['id']}/status",
            json={"status": "LOST"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 400


class TestPermitTypes:

    @pytest.mark.asyncio
    async def test_list_active_types(self, test_client, database, council, permit_type):
        await create_permit_type(database, council, "SIGNAGE", is_active=False)

        response = await test_client.get("/api/permits/types", params={"council_id": str(council.id)})

        assert response.status_code == 200
        codes = [pt["code"] for pt in response.json()["data"]]
        assert codes == ["BUILDING"]

    @pytest.mark.asyncio
    async def test_admin_creates_type(self, test_client, admin, council):
        response = await test_client.post(
            "/api/permits/types",
            json={
                "council_id": str(council.id),
                "name": "Fence Consent",
                "code": "fence",
                "fees": {"baseFee": 800},
            },
            headers=auth_headers(admin),
        )

        assert response.status_code == 201
        assert response.json()["data"]["code"] == "FENCE"

    @pytest.mark.asyncio
    async def test_duplicate_type_code(self, test_client, admin, council, permit_type):
        response = await test_client.post(
            "/api/permits/types",
            json={"council_id": str(council.id), "name": "Another", "code": "BUILDING"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_staff_cannot_create_type(self, test_client, staff, council):
        response = await test_client.post(
            "/api/permits/types",
            json={"council_id": str(council.id), "name": "Pool Consent", "code": "POOL"},
            headers=auth_headers(staff),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_deactivate_type(self, test_client, admin, council, permit_type):
        response = await test_client.put(
            f"/api/permits/types/{permit_type.id}",
            json={"is_active": False},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False
        listing = await test_client.get("/api/permits/types")
        assert listing.json()["data"] == []
