"""Tests for the HTTP and WebSocket API."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from helpers import T0, FakeProbe
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from marketpulse.alerts.models import Severity
from marketpulse.config import Settings
from marketpulse.core import MonitoringCore
from marketpulse.main import app
from marketpulse.notifications.broadcast import LiveBroadcaster
from marketpulse.notifications.encryption import SecretCipher
from marketpulse.notifications.models import ChannelType, DeliveryResult


@pytest.fixture
def webhook_sender():
    sender = AsyncMock()
    sender.send.return_value = DeliveryResult(success=True, response_code=200)
    return sender


@pytest.fixture
def core(session_factory, clock, webhook_sender):
    settings = Settings(encryption_key=SecretCipher.generate_key(), admin_emails=[])
    return MonitoringCore(
        session_factory,
        settings,
        probe=FakeProbe(),
        senders={ChannelType.WEBHOOK: webhook_sender},
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(core):
    app.state.core = core
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.state.core = None


def _rule_body(**overrides):
    body = {
        "name": "Payment failures",
        "condition": "payment_failure",
        "threshold": 5,
        "time_window": 15,
        "severity": "high",
        "channels": ["ops-webhook"],
    }
    body.update(overrides)
    return body


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_503_without_core(self):
        app.state.core = None
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/alerts")

        assert response.status_code == 503


class TestRuleEndpoints:
    @pytest.mark.asyncio
    async def test_rule_crud(self, client):
        created = await client.post("/api/alerts/rules", json=_rule_body())
        assert created.status_code == 201
        rule = created.json()
        assert rule["condition"] == "payment_failure"
        assert rule["is_active"] is True

        patched = await client.patch(f"/api/alerts/rules/{rule['id']}", json={"threshold": 10})
        assert patched.status_code == 200
        assert patched.json()["threshold"] == 10
        assert patched.json()["severity"] == "high"

        listed = await client.get("/api/alerts/rules")
        assert [r["id"] for r in listed.json()] == [rule["id"]]

        deleted = await client.delete(f"/api/alerts/rules/{rule['id']}")
        assert deleted.status_code == 204
        assert (await client.get(f"/api/alerts/rules/{rule['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_condition_rejected(self, client):
        response = await client.post("/api/alerts/rules", json=_rule_body(condition="moon_phase"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_active_rule_without_channels_rejected(self, client):
        response = await client.post("/api/alerts/rules", json=_rule_body(channels=[]))

        assert response.status_code == 422
        assert "channel" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_null_is_active_rejected(self, client):
        rule = (await client.post("/api/alerts/rules", json=_rule_body())).json()

        response = await client.patch(f"/api/alerts/rules/{rule['id']}", json={"is_active": None})

        assert response.status_code == 422
        assert "is_active" in response.json()["detail"]
        assert (await client.get(f"/api/alerts/rules/{rule['id']}")).json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_missing_rule(self, client):
        assert (await client.patch("/api/alerts/rules/99", json={"threshold": 1})).status_code == 404
        assert (await client.delete("/api/alerts/rules/99")).status_code == 404


class TestAlertEndpoints:
    @pytest.mark.asyncio
    async def test_list_filter_and_resolve(self, client, core):
        critical = await core.rule_engine.raise_alert("system_load", Severity.CRITICAL, "CPU at 91%")
        await core.rule_engine.raise_alert("high_error_rate", Severity.MEDIUM, "Errors at 4%")

        listed = await client.get("/api/alerts", params={"severity": "critical"})
        assert [a["id"] for a in listed.json()] == [critical.id]

        resolved = await client.post(
            f"/api/alerts/{critical.id}/resolve", json={"resolved_by": "oncall"}
        )
        assert resolved.status_code == 200
        assert resolved.json()["resolved"] is True
        assert resolved.json()["resolved_by"] == "oncall"

        again = await client.post(f"/api/alerts/{critical.id}/resolve", json={"resolved_by": "bob"})
        assert again.status_code == 409

        open_alerts = await client.get("/api/alerts", params={"resolved": "false"})
        assert [a["type"] for a in open_alerts.json()] == ["high_error_rate"]

    @pytest.mark.asyncio
    async def test_resolve_missing_alert(self, client):
        response = await client.post("/api/alerts/404/resolve", json={"resolved_by": "oncall"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_limit_is_bounded(self, client):
        response = await client.get("/api/alerts", params={"limit": 1000})
        assert response.status_code == 422


class TestChannelEndpoints:
    @pytest.mark.asyncio
    async def test_secrets_redacted_in_responses(self, client):
        body = {
            "name": "oncall-sms",
            "type": "sms",
            "config": {
                "account_sid": "AC1",
                "auth_token": "plaintext-token",
                "from_number": "+15550000000",
                "to_numbers": ["+15551111111"],
            },
        }

        created = await client.post("/api/channels", json=body)
        assert created.status_code == 201
        assert created.json()["config"]["auth_token"] == "***"

        fetched = await client.get(f"/api/channels/{created.json()['id']}")
        assert "plaintext-token" not in fetched.text

    @pytest.mark.asyncio
    async def test_malformed_channel_rejected(self, client):
        response = await client.post("/api/channels", json={"name": "hook", "type": "webhook"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_test_and_delete(self, client, webhook_sender):
        created = await client.post(
            "/api/channels",
            json={"name": "ops-webhook", "type": "webhook", "config": {"url": "https://hooks.test/a"}},
        )
        channel_id = created.json()["id"]

        patched = await client.patch(f"/api/channels/{channel_id}", json={"enabled": False})
        assert patched.json()["enabled"] is False

        tested = await client.post(f"/api/channels/{channel_id}/test")
        assert tested.status_code == 200
        assert tested.json() == {"success": True, "response_code": 200, "error_message": None}
        webhook_sender.send.assert_awaited_once()

        assert (await client.delete(f"/api/channels/{channel_id}")).status_code == 204
        assert (await client.get(f"/api/channels/{channel_id}")).status_code == 404
        assert (await client.post(f"/api/channels/{channel_id}/test")).status_code == 404


class TestMonitoringEndpoints:
    @pytest.mark.asyncio
    async def test_metric_history(self, client, core, clock):
        await core.collector.run_cycle()
        clock.advance(seconds=30)

        response = await client.get("/api/monitoring/metrics", params={"period": "1h"})

        data = response.json()
        assert data["period"] == "1h"
        assert len(data["system"]) == 1
        assert data["system"][0]["cpu_usage"] == pytest.approx(0.2)
        assert data["business"][0]["transaction_volume"] == 0

    @pytest.mark.asyncio
    async def test_unknown_period_falls_back(self, client):
        response = await client.get("/api/monitoring/metrics", params={"period": "1y"})
        assert response.json()["period"] == "24h"

    @pytest.mark.asyncio
    async def test_forecast_without_history(self, client):
        response = await client.get("/api/monitoring/metrics/cpu_usage/forecast")

        assert response.status_code == 200
        assert response.json()["status"] == "insufficient_data"
        assert response.json()["predictions"] == []

    @pytest.mark.asyncio
    async def test_performance_analyze_and_history(self, client):
        analyzed = await client.post("/api/monitoring/performance/analyze")
        assert analyzed.status_code == 200
        assert analyzed.json()["overall_score"] == 100.0

        history = await client.get(
            "/api/monitoring/performance/history",
            params={
                "start": (T0 - timedelta(hours=1)).isoformat(),
                "end": (T0 + timedelta(hours=1)).isoformat(),
            },
        )
        assert [a["id"] for a in history.json()] == [analyzed.json()["id"]]

        trends = await client.get("/api/monitoring/performance/trends")
        assert trends.json()["analysis_count"] == 1

    @pytest.mark.asyncio
    async def test_history_rejects_inverted_range(self, client):
        response = await client.get(
            "/api/monitoring/performance/history",
            params={"start": T0.isoformat(), "end": (T0 - timedelta(hours=1)).isoformat()},
        )
        assert response.status_code == 400


class TestMonitoringWebSocket:
    def test_ping_pong_and_subscription(self):
        broadcaster = LiveBroadcaster()
        app.state.core = MagicMock(broadcaster=broadcaster)
        try:
            with TestClient(app).websocket_connect("/ws/monitoring") as websocket:
                websocket.send_text("ping")
                assert websocket.receive_json() == {"type": "pong", "received": "ping"}
                assert broadcaster.observer_count == 1
        finally:
            app.state.core = None

    def test_closes_without_core(self):
        app.state.core = None
        with TestClient(app).websocket_connect("/ws/monitoring") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_text()
        assert exc_info.value.code == 1011
