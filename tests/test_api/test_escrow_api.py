"""HTTP tests for the escrow and notification routes.

Runs the FastAPI app in-process through httpx's ASGI transport. The
database session and notifier dependencies are overridden; lifespan is not
run, so Redis is never initialized and idempotency keys pass unguarded
unless the claim is patched.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio

from project_escrow.api.deps import get_db_session, get_notifier
from project_escrow.api.identity import create_access_token
from project_escrow.infrastructure.database.orm_models import Notification
from project_escrow.main import create_app
from project_escrow.services.notification_service import QueuedNotifier

CLIENT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
WORKER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
OUTSIDER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")

BASE = "/api/v1/escrow"


def auth(user_id: uuid.UUID, name: str = "") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, name=name)}"}


CLIENT = auth(CLIENT_ID, "Asha Client")
WORKER = auth(WORKER_ID, "Ravi Worker")
OUTSIDER = auth(OUTSIDER_ID, "Olu Outsider")


@pytest.fixture
def api_notifier() -> QueuedNotifier:
    return QueuedNotifier()


@pytest_asyncio.fixture
async def api(session_factory, users, api_notifier):
    app = create_app()

    async def session_override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = session_override
    app.dependency_overrides[get_notifier] = lambda: api_notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def create_project(api, budget: int = 10000) -> dict:
    response = await api.post(
        f"{BASE}/projects",
        json={
            "worker_id": str(WORKER_ID),
            "title": "Landing page",
            "description": "Responsive landing page",
            "budget": budget,
            "deadline": "2026-12-01T00:00:00Z",
        },
        headers=CLIENT,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestLifecycleOverHttp:
    @pytest.mark.asyncio
    async def test_happy_path(self, api, api_notifier):
        project = await create_project(api)
        assert project["status"] == "offer_sent"
        assert project["client_name"] == "Asha Client"
        assert project["worker_name"] == "Ravi Worker"
        pid = project["id"]

        response = await api.post(f"{BASE}/projects/{pid}/accept", headers=WORKER)
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

        response = await api.post(f"{BASE}/projects/{pid}/advance-payment", headers=CLIENT)
        assert response.json()["status"] == "in_progress"
        assert Decimal(response.json()["advance_amount"]) == Decimal("1000")

        response = await api.patch(
            f"{BASE}/projects/{pid}/progress",
            json={"progress_percent": 75, "milestones": [{"title": "Design"}]},
            headers=WORKER,
        )
        assert response.json()["progress_percent"] == 75
        assert response.json()["milestones"][0]["title"] == "Design"

        response = await api.post(f"{BASE}/projects/{pid}/complete", headers=WORKER)
        assert response.json()["status"] == "completed"

        response = await api.post(f"{BASE}/projects/{pid}/final-payment", headers=CLIENT)
        assert Decimal(response.json()["final_amount"]) == Decimal("9000")

        response = await api.post(
            f"{BASE}/projects/{pid}/rate", json={"rating": 5, "review": "Great"}, headers=CLIENT
        )
        body = response.json()
        assert body["status"] == "completed_released"
        assert Decimal(body["platform_commission_amount"]) == Decimal("500")
        assert Decimal(body["worker_payout_amount"]) == Decimal("9500")

        response = await api.get(f"{BASE}/projects/{pid}/transactions", headers=WORKER)
        entries = response.json()
        assert len(entries) == 4
        assert entries[0]["type"] == "advance_payment"
        assert entries[0]["project_title"] == "Landing page"
        assert entries[0]["from_user_name"] == "Asha Client"
        assert entries[0]["metadata"] == {"description": "10% advance payment"}

        assert len(api_notifier.pending) == 6

    @pytest.mark.asyncio
    async def test_accept_with_terms(self, api):
        pid = (await create_project(api))["id"]
        response = await api.post(
            f"{BASE}/projects/{pid}/accept",
            json={"agreed_budget": 12000, "agreed_timeline": "Three weeks"},
            headers=WORKER,
        )
        body = response.json()
        assert Decimal(body["agreed_budget"]) == Decimal("12000")
        assert body["agreed_timeline"] == "Three weeks"

    @pytest.mark.asyncio
    async def test_status_endpoint(self, api):
        pid = (await create_project(api))["id"]
        response = await api.get(f"{BASE}/projects/{pid}/status", headers=CLIENT)

        assert response.json() == {
            "project_id": pid,
            "status": "offer_sent",
            "role": "client",
            "allowed_events": ["accept", "reject"],
            "actor_events": [],
        }

    @pytest.mark.asyncio
    async def test_listings(self, api):
        pid = (await create_project(api))["id"]

        mine = await api.get(f"{BASE}/projects", headers=WORKER)
        assert [p["id"] for p in mine.json()] == [pid]

        chat = await api.get(f"{BASE}/projects/chat/{CLIENT_ID}", headers=WORKER)
        assert [p["id"] for p in chat.json()] == [pid]

        await api.post(f"{BASE}/projects/{pid}/reject", headers=WORKER)
        chat = await api.get(f"{BASE}/projects/chat/{CLIENT_ID}", headers=WORKER)
        assert chat.json() == []

    @pytest.mark.asyncio
    async def test_my_transactions(self, api):
        pid = (await create_project(api))["id"]
        await api.post(f"{BASE}/projects/{pid}/accept", headers=WORKER)
        await api.post(f"{BASE}/projects/{pid}/advance-payment", headers=CLIENT)

        response = await api.get(f"{BASE}/transactions", params={"limit": 5}, headers=CLIENT)
        assert [t["type"] for t in response.json()] == ["advance_payment"]

        response = await api.get(f"{BASE}/transactions", headers=WORKER)
        assert response.json() == []


class TestErrors:
    @pytest.mark.asyncio
    async def test_missing_token(self, api):
        response = await api.get(f"{BASE}/projects")
        assert response.status_code == 401
        assert response.json()["error"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_bad_token(self, api):
        response = await api.get(f"{BASE}/projects", headers={"Authorization": "Bearer junk"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_party(self, api):
        pid = (await create_project(api))["id"]
        response = await api.post(f"{BASE}/projects/{pid}/accept", headers=CLIENT)

        assert response.status_code == 403
        assert response.json()["error"] == "NOT_AUTHORIZED"

        project = await api.get(f"{BASE}/projects/{pid}", headers=CLIENT)
        assert project.json()["status"] == "offer_sent"

    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, api):
        pid = (await create_project(api))["id"]
        response = await api.get(f"{BASE}/projects/{pid}", headers=OUTSIDER)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_project(self, api):
        response = await api.get(f"{BASE}/projects/{uuid.uuid4()}", headers=CLIENT)
        assert response.status_code == 404
        assert response.json()["error"] == "PROJECT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, api):
        pid = (await create_project(api))["id"]
        response = await api.post(f"{BASE}/projects/{pid}/complete", headers=WORKER)

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_STATE_TRANSITION"

    @pytest.mark.asyncio
    async def test_malformed_body(self, api):
        response = await api.post(
            f"{BASE}/projects",
            json={"worker_id": str(WORKER_ID), "title": "No budget"},
            headers=CLIENT,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            '{"progress_percent": NaN}',
            '{"progress_percent": Infinity}',
            '{"milestones": [{"title": "Design", "progress_percent": -Infinity}]}',
        ],
    )
    async def test_non_finite_progress(self, api, body):
        pid = (await create_project(api))["id"]
        response = await api.patch(
            f"{BASE}/projects/{pid}/progress",
            content=body,
            headers={**WORKER, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        project = await api.get(f"{BASE}/projects/{pid}", headers=WORKER)
        assert project.json()["progress_percent"] == 0

    @pytest.mark.asyncio
    async def test_business_validation(self, api):
        response = await api.post(
            f"{BASE}/projects",
            json={"worker_id": str(WORKER_ID), "title": "Free", "budget": 0},
            headers=CLIENT,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_duplicate_idempotency_key(self, api):
        pid = (await create_project(api))["id"]
        await api.post(f"{BASE}/projects/{pid}/accept", headers=WORKER)

        with patch("project_escrow.api.deps.claim_idempotency", AsyncMock(return_value=False)):
            response = await api.post(
                f"{BASE}/projects/{pid}/advance-payment",
                headers={**CLIENT, "Idempotency-Key": "pay-1"},
            )

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_OPERATION"
        project = await api.get(f"{BASE}/projects/{pid}", headers=CLIENT)
        assert project.json()["status"] == "accepted"

    @pytest.mark.asyncio
    async def test_key_released_when_command_fails(self, api):
        pid = (await create_project(api))["id"]
        release = AsyncMock()

        with (
            patch("project_escrow.api.deps.claim_idempotency", AsyncMock(return_value=True)),
            patch("project_escrow.api.deps.release_idempotency", release),
        ):
            response = await api.post(
                f"{BASE}/projects/{pid}/advance-payment",
                headers={**CLIENT, "Idempotency-Key": "pay-1"},
            )

        assert response.status_code == 400
        release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, api):
        response = await api.get(f"{BASE}/projects", headers={**CLIENT, "X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestNotificationRoutes:
    @pytest.mark.asyncio
    async def test_inbox_and_mark_read(self, api, session_factory):
        async with session_factory() as session:
            note = Notification(
                user_id=WORKER_ID, type="project_offer", title="New Project Offer", message="Logo"
            )
            session.add(note)
            await session.commit()

        response = await api.get("/api/v1/notifications", headers=WORKER)
        assert [n["id"] for n in response.json()] == [str(note.id)]
        assert response.json()[0]["read"] is False

        response = await api.post(f"/api/v1/notifications/{note.id}/read", headers=WORKER)
        assert response.status_code == 200
        assert response.json()["read"] is True

        response = await api.post(f"/api/v1/notifications/{note.id}/read", headers=CLIENT)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_device_registration(self, api):
        response = await api.post(
            "/api/v1/notifications/devices",
            json={"token": "fcm-token-1", "platform": "android"},
            headers=WORKER,
        )
        assert response.status_code == 201
        assert response.json()["platform"] == "android"

        response = await api.post(
            "/api/v1/notifications/devices/unregister",
            json={"token": "fcm-token-1"},
            headers=WORKER,
        )
        assert response.status_code == 204


class TestHealth:
    @pytest.mark.asyncio
    async def test_degraded_without_redis(self, api, engine):
        with patch("project_escrow.api.routes.health.get_engine", return_value=engine):
            response = await api.get("/api/v1/health")

        body = response.json()
        assert response.status_code == 200
        assert body["database"] == "healthy"
        assert body["redis"].startswith("unhealthy")
        assert body["status"] == "degraded"
