"""Integration tests for API endpoints.

These tests exercise the full HTTP stack: FastAPI → route → runtime → DB.
"""

import pytest

from db.models.campaign import Campaign
from conftest import SHOP_DOMAIN

WELCOME = [{"id": "hi", "type": "send_email", "config": {"subject": "Hi", "body": "Hello"}}]


def customer_event(**overrides):
    body = {
        "topic": "customers/create",
        "shop_domain": SHOP_DOMAIN,
        "payload": {"id": 7, "email": "sam@example.com", "accepts_marketing": True},
    }
    body.update(overrides)
    return body


# ─── Events ───

class TestEventsEndpoint:
    async def test_ingest_starts_execution(self, client, make_workflow, email_channel):
        await make_workflow(WELCOME)

        resp = await client.post("/api/v1/events", json=customer_event())
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["success"] is True
        assert data["processed"] is True
        assert data["trigger_type"] == "customer_created"
        assert len(data["execution_ids"]) == 1
        assert len(email_channel.sent) == 1

    async def test_duplicate_delivery(self, client, make_workflow):
        await make_workflow(WELCOME)
        first = (await client.post("/api/v1/events", json=customer_event(event_id="d-1"))).json()
        second = (await client.post("/api/v1/events", json=customer_event(event_id="d-1"))).json()
        assert first["event_key"] == second["event_key"] == "d-1"
        assert second["duplicate"] is True
        assert second["execution_ids"] == []

    async def test_unknown_store_reported_not_raised(self, client, store):
        resp = await client.post("/api/v1/events", json=customer_event(shop_domain="nope.myshopify.com"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert "nope.myshopify.com" in data["error"]

    async def test_missing_fields_rejected(self, client):
        resp = await client.post("/api/v1/events", json={"topic": "customers/create"})
        assert resp.status_code == 422


# ─── Executions ───

class TestExecutionsEndpoint:
    async def test_get_and_cancel(self, client, make_workflow, make_contact):
        workflow = await make_workflow(
            [{"id": "wait", "type": "delay", "config": {"duration_minutes": 60}}] + WELCOME
        )
        contact = await make_contact()

        started = await client.post(
            f"/api/v1/workflows/{workflow.id}/execute", json={"contact_id": contact.id}
        )
        assert started.status_code == 200, started.text
        execution = started.json()
        assert execution["status"] == "waiting"
        assert execution["resume_at"].startswith("2026-03-02T13:00")

        fetched = await client.get(f"/api/v1/executions/{execution['id']}")
        assert fetched.json()["current_action_index"] == 1

        cancelled = await client.post(
            f"/api/v1/executions/{execution['id']}/cancel", json={"reason": "merchant request"}
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancel_reason"] == "merchant request"

    async def test_unknown_execution_is_404(self, client):
        resp = await client.get("/api/v1/executions/does-not-exist")
        assert resp.status_code == 404
        data = resp.json()
        assert data["error_code"] == "ExecutionNotFoundError"
        assert "request_id" in data


# ─── Workflows ───

class TestWorkflowsEndpoint:
    async def test_manual_execute_and_stats(self, client, make_workflow, make_contact):
        workflow = await make_workflow(WELCOME)
        contact = await make_contact()

        resp = await client.post(
            f"/api/v1/workflows/{workflow.id}/execute",
            json={"contact_id": contact.id, "data": {"source": "support"}},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

        stats = (await client.get(f"/api/v1/workflows/{workflow.id}/stats")).json()
        assert stats["total_executions"] == 1
        assert stats["successful_executions"] == 1
        assert stats["success_rate"] == 1.0

    async def test_list_executions(self, client, make_workflow, make_contact):
        workflow = await make_workflow(WELCOME)
        contact = await make_contact()
        for _ in range(2):
            await client.post(f"/api/v1/workflows/{workflow.id}/execute", json={"contact_id": contact.id})

        resp = await client.get(f"/api/v1/workflows/{workflow.id}/executions", params={"limit": 10})
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 2
        assert {e["status"] for e in data} == {"completed"}

        resp = await client.get("/api/v1/workflows/missing/executions")
        assert resp.status_code == 404

    async def test_unknown_workflow(self, client, store):
        resp = await client.post("/api/v1/workflows/missing/execute", json={})
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "WorkflowNotFoundError"

        resp = await client.get("/api/v1/workflows/missing/stats")
        assert resp.status_code == 404

    async def test_unknown_contact(self, client, make_workflow):
        workflow = await make_workflow(WELCOME)
        resp = await client.post(f"/api/v1/workflows/{workflow.id}/execute", json={"contact_id": "ghost"})
        assert resp.status_code == 404


# ─── Campaigns ───

class TestCampaignsEndpoint:
    @pytest.fixture
    def make_campaign(self, session_factory, store):
        async def _make(**fields):
            async with session_factory() as session:
                campaign = Campaign(store_id=store.id, name="Spring sale", subject="Sale", body="Hi", **fields)
                session.add(campaign)
                await session.commit()
            return campaign

        return _make

    async def test_send(self, client, make_campaign, make_contact, email_channel):
        await make_contact(email="a@example.com")
        await make_contact(email="b@example.com")
        campaign = await make_campaign()

        resp = await client.post(f"/api/v1/campaigns/{campaign.id}/send")
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "sent"
        assert data["delivered"] == 2
        assert len(email_channel.sent) == 2

    async def test_resend_rejected(self, client, make_campaign):
        campaign = await make_campaign(status="sent")
        resp = await client.post(f"/api/v1/campaigns/{campaign.id}/send")
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "ValidationError"

    async def test_unknown_campaign(self, client, store):
        resp = await client.post("/api/v1/campaigns/missing/send")
        assert resp.status_code == 404
