"""HTTP-level tests: principal resolution, error bodies and the tender flow.

The app runs in-process through httpx's ASGI transport against the per-test
SQLite database; the lifespan is not entered, so no global engine is made.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import httpx
import pytest

from tender_clearinghouse.api.deps import get_app_settings, get_db_session_factory
from tender_clearinghouse.domain.enums import Role
from tender_clearinghouse.main import create_app
from tender_clearinghouse.services.settlement import SimulatedSettlementRail

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tender_clearinghouse.domain.models import Principal


def _as(principal: Principal) -> dict[str, str]:
    return {"X-Principal-Id": str(principal.id)}


@pytest.fixture
async def client(session_factory, settings) -> AsyncIterator[httpx.AsyncClient]:  # noqa: ANN001
    app = create_app()
    app.dependency_overrides[get_db_session_factory] = lambda: session_factory
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.state.settlement_rail = SimulatedSettlementRail()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def tender_payload() -> dict:
    return {
        "title": "Bridge",
        "description": "Replace the pedestrian bridge over the canal",
        "budget": "50",
        "deadline": (datetime.now(UTC) + timedelta(days=30)).isoformat(),
        "max_bids": 5,
    }


class TestHealth:
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "healthy"
        assert body["redis"] == "not configured"
        assert body["settlement_mode"] == "simulated"

    async def test_request_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "trace-42"})
        assert response.headers["X-Request-ID"] == "trace-42"


class TestPrincipal:
    async def test_missing_header_is_401(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/tenders/open")

        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_REQUIRED"

    async def test_unknown_principal_is_401(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            "/api/v1/tenders/open", headers={"X-Principal-Id": str(uuid.uuid4())}
        )
        assert response.status_code == 401

    async def test_malformed_principal_is_401(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/tenders/open", headers={"X-Principal-Id": "bob"})
        assert response.status_code == 401

    async def test_role_comes_from_the_users_table(
        self, client: httpx.AsyncClient, contractor, tender_payload  # noqa: ANN001
    ) -> None:
        response = await client.post("/api/v1/tenders", json=tender_payload, headers=_as(contractor))

        assert response.status_code == 403
        assert response.json() == {
            "error": "ACCESS_DENIED",
            "kind": "authorization",
            "message": response.json()["message"],
            "retryable": False,
        }


class TestTenderFlow:
    async def test_publish_bid_award_settle(
        self, client: httpx.AsyncClient, admin, contractor, tender_payload  # noqa: ANN001
    ) -> None:
        created = await client.post("/api/v1/tenders", json=tender_payload, headers=_as(admin))
        assert created.status_code == 201
        tender_id = created.json()["id"]
        assert created.json()["status"] == "Open"

        listing = await client.get("/api/v1/tenders/open", headers=_as(contractor))
        assert listing.json()["can_bid"] is True
        assert [t["id"] for t in listing.json()["tenders"]] == [tender_id]

        bid = await client.post(
            f"/api/v1/tenders/{tender_id}/bids",
            json={"amount": "60", "estimated_duration_days": 30, "proposal": "Steel span"},
            headers=_as(contractor),
        )
        assert bid.status_code == 201
        assert bid.json()["is_winner"] is False

        awarded = await client.post(
            f"/api/v1/tenders/{tender_id}/award",
            json={"bid_id": bid.json()["id"]},
            headers=_as(admin),
        )
        assert awarded.status_code == 200
        assert awarded.json()["status"] == "Awarded"
        assert awarded.json()["payment"]["status"] == "Pending"
        assert Decimal(awarded.json()["payment"]["amount"]) == Decimal("60")

        settled = await client.post(f"/api/v1/payments/{tender_id}/process", headers=_as(admin))
        assert settled.status_code == 200
        assert settled.json()["status"] == "Completed"
        assert settled.json()["date"] is not None

        again = await client.post(f"/api/v1/payments/{tender_id}/process", headers=_as(admin))
        assert again.status_code == 409
        assert again.json()["error"] == "ALREADY_PROCESSED"

        cleared = await client.delete(f"/api/v1/payments/{tender_id}", headers=_as(admin))
        assert cleared.status_code == 200
        assert cleared.json()["status"] == "Awarded"
        assert cleared.json()["winning_bid_id"] == bid.json()["id"]
        assert cleared.json()["payment"] is None

    async def test_duplicate_bid_is_409(
        self, client: httpx.AsyncClient, admin, contractor, tender_payload  # noqa: ANN001
    ) -> None:
        tender_id = (
            await client.post("/api/v1/tenders", json=tender_payload, headers=_as(admin))
        ).json()["id"]
        body = {"amount": "60", "estimated_duration_days": 30, "proposal": "Steel span"}
        await client.post(f"/api/v1/tenders/{tender_id}/bids", json=body, headers=_as(contractor))

        response = await client.post(
            f"/api/v1/tenders/{tender_id}/bids", json=body, headers=_as(contractor)
        )

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_BID"
        assert response.json()["kind"] == "conflict"

    async def test_unverified_bid_is_403(
        self, client: httpx.AsyncClient, admin, unverified_contractor, tender_payload  # noqa: ANN001
    ) -> None:
        tender_id = (
            await client.post("/api/v1/tenders", json=tender_payload, headers=_as(admin))
        ).json()["id"]

        response = await client.post(
            f"/api/v1/tenders/{tender_id}/bids",
            json={"amount": "60", "estimated_duration_days": 30, "proposal": "Steel span"},
            headers=_as(unverified_contractor),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "NOT_VERIFIED"

    async def test_unknown_tender_is_404(self, client: httpx.AsyncClient, admin) -> None:  # noqa: ANN001
        response = await client.get(f"/api/v1/tenders/{uuid.uuid4()}", headers=_as(admin))
        assert response.status_code == 404
        assert response.json()["error"] == "TENDER_NOT_FOUND"

    async def test_status_lists_allowed_events(
        self, client: httpx.AsyncClient, admin, tender_payload  # noqa: ANN001
    ) -> None:
        tender_id = (
            await client.post("/api/v1/tenders", json=tender_payload, headers=_as(admin))
        ).json()["id"]

        response = await client.get(f"/api/v1/tenders/{tender_id}/status", headers=_as(admin))

        assert response.json()["status"] == "Open"
        assert "award_bid" in response.json()["allowed_events"]


class TestVerificationFlow:
    async def test_request_review_then_bid(
        self, client: httpx.AsyncClient, make_principal, verifier  # noqa: ANN001
    ) -> None:
        newcomer = await make_principal(Role.CONTRACTOR)
        submitted = await client.post(
            "/api/v1/verification/requests",
            json={"credentials": [{"type": "license", "title": "Class A"}]},
            headers=_as(newcomer),
        )
        assert submitted.status_code == 201
        assert submitted.json()["status"] == "pending"

        duplicate = await client.post(
            "/api/v1/verification/requests",
            json={"credentials": [{"type": "license", "title": "Class A"}]},
            headers=_as(newcomer),
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["error"] == "DUPLICATE_PENDING_REQUEST"

        reviewed = await client.post(
            f"/api/v1/verification/requests/{submitted.json()['id']}/review",
            json={"decision": "approve", "notes": "Licence checked"},
            headers=_as(verifier),
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["status"] == "approved"

        profile = await client.get(f"/api/v1/contractors/{newcomer.id}", headers=_as(newcomer))
        assert profile.json()["is_verified"] is True

    async def test_empty_credentials_rejected_by_schema(
        self, client: httpx.AsyncClient, unverified_contractor  # noqa: ANN001
    ) -> None:
        response = await client.post(
            "/api/v1/verification/requests",
            json={"credentials": []},
            headers=_as(unverified_contractor),
        )
        assert response.status_code == 422


class TestContractors:
    async def test_overview(
        self, client: httpx.AsyncClient, verifier, contractor, unverified_contractor  # noqa: ANN001
    ) -> None:
        response = await client.get(
            "/api/v1/contractors/verification-overview", headers=_as(verifier)
        )
        assert response.json() == {"total": 2, "verified": 1, "unverified": 1}

    async def test_delete(self, client: httpx.AsyncClient, admin, unverified_contractor) -> None:  # noqa: ANN001
        response = await client.delete(
            f"/api/v1/contractors/{unverified_contractor.id}", headers=_as(admin)
        )
        assert response.status_code == 204

        gone = await client.get(f"/api/v1/contractors/{unverified_contractor.id}", headers=_as(admin))
        assert gone.status_code == 404
