"""Unit tests for the /webhooks/stripe endpoint and admin routes."""

from __future__ import annotations

import time
from typing import Any
from unittest.mock import AsyncMock

import orjson
import pytest
import yaml
from fastapi.testclient import TestClient

from eventguard.config import get_server_config
from eventguard.events.dispatch import EventDispatcher
from eventguard.events.errors import InfrastructureError
from eventguard.main import app
from eventguard.transport.signatures import sign_payload

SECRET = "whsec_endpoint_test"


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def client(tmp_path, monkeypatch, dispatcher):
    config_path = tmp_path / "server.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "store": {"backend": "in_memory"},
                "webhook": {"signing_secret": SECRET, "tolerance_seconds": 300},
                "logging": {"level": "DEBUG"},
            }
        )
    )
    monkeypatch.setenv("EVENTGUARD_CONFIG_PATH", str(config_path))
    get_server_config.cache_clear()
    app.state.dispatcher = dispatcher
    with TestClient(app) as test_client:
        yield test_client
    get_server_config.cache_clear()


def _event(event_id: str = "evt_123", event_type: str = "checkout.session.completed") -> dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": {"id": "cs_test_1", "metadata": {"transferId": "tr_1"}}},
    }


def _post(client: TestClient, payload: dict[str, Any], *, secret: str = SECRET):
    body = orjson.dumps(payload)
    header = sign_payload(body, secret, int(time.time()))
    return client.post(
        "/webhooks/stripe",
        content=body,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


class TestWebhookDelivery:
    def test_first_delivery_runs_handler(self, client, dispatcher):
        handler = AsyncMock()
        dispatcher.register("checkout.session.completed", handler)

        response = _post(client, _event())

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "event_id": "evt_123",
            "event_type": "checkout.session.completed",
            "duplicate": False,
        }
        handler.assert_awaited_once()
        assert handler.await_args[0][0]["data"]["object"]["id"] == "cs_test_1"

    def test_redelivery_is_acknowledged_without_reprocessing(self, client, dispatcher):
        handler = AsyncMock()
        dispatcher.register("checkout.session.completed", handler)

        _post(client, _event())
        response = _post(client, _event())

        assert response.status_code == 200
        assert response.json()["duplicate"] is True
        handler.assert_awaited_once()

    def test_unhandled_event_type_is_acknowledged(self, client):
        response = _post(client, _event("evt_789", "customer.created"))
        assert response.status_code == 200
        assert response.json()["duplicate"] is False

    def test_invalid_signature_rejected_and_not_recorded(self, client):
        response = _post(client, _event("evt_forged"), secret="whsec_wrong")

        assert response.status_code == 400
        assert "Webhook Error" in response.json()["detail"]
        assert client.get("/admin/events/evt_forged").status_code == 404

    def test_missing_signature_header_rejected(self, client):
        response = client.post("/webhooks/stripe", content=orjson.dumps(_event()))
        assert response.status_code == 400

    def test_schema_violation_rejected(self, client):
        payload = _event()
        del payload["data"]
        response = _post(client, payload)
        assert response.status_code == 400
        assert "invalid event" in response.json()["detail"]

    def test_non_object_body_rejected(self, client):
        body = b"[1, 2, 3]"
        header = sign_payload(body, SECRET, int(time.time()))
        response = client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": header})
        assert response.status_code == 400

    def test_handler_failure_keeps_claim(self, client, dispatcher):
        dispatcher.register("invoice.payment_failed", AsyncMock(side_effect=RuntimeError("smtp down")))

        first = _post(client, _event("evt_fail", "invoice.payment_failed"))
        second = _post(client, _event("evt_fail", "invoice.payment_failed"))

        assert first.status_code == 500
        assert second.status_code == 200
        assert second.json()["duplicate"] is True

    def test_store_outage_returns_503(self, client, monkeypatch):
        store = client.app.state.store
        monkeypatch.setattr(
            store, "insert", AsyncMock(side_effect=InfrastructureError("timeout", backend="in_memory"))
        )

        response = _post(client, _event("evt_outage"))

        assert response.status_code == 503
        stats = client.get("/admin/stats").json()
        assert stats["infrastructure_errors"] == 1
        assert stats["claimed"] == 0


class TestAdminRoutes:
    def test_lookup_returns_claimed_record(self, client):
        _post(client, _event("evt_lookup", "invoice.paid"))

        response = client.get("/admin/events/evt_lookup")

        assert response.status_code == 200
        body = response.json()
        assert body["event_id"] == "evt_lookup"
        assert body["event_type"] == "invoice.paid"
        assert len(body["payload_digest"]) == 64

    def test_stats_counts_duplicates(self, client):
        _post(client, _event("evt_a"))
        _post(client, _event("evt_a"))
        _post(client, _event("evt_b"))

        stats = client.get("/admin/stats").json()

        assert stats["received"] == 3
        assert stats["claimed"] == 2
        assert stats["duplicates"] == 1
        assert stats["live_records"] == 2
        assert stats["duplicate_rate"] == round(1 / 3, 4)

    def test_purge_reports_removed_count(self, client):
        response = client.post("/admin/events/purge")
        assert response.status_code == 200
        assert response.json() == {"removed": 0, "store_backend": "in_memory"}

    def test_config_hides_secret(self, client, dispatcher):
        dispatcher.register("invoice.paid", AsyncMock())

        body = client.get("/admin/config").json()

        assert body["storage_backend"] == "in_memory"
        assert body["retention_seconds"] == 604800
        assert body["signing_secret_configured"] is True
        assert SECRET not in str(body)
        assert body["handled_event_types"] == ["invoice.paid"]

    def test_health_reports_store(self, client):
        body = client.get("/admin/health").json()
        assert body["status"] == "healthy"
        assert body["store_reachable"] is True

    def test_root_describes_store(self, client):
        body = client.get("/").json()
        assert body["store"] == {"backend": "in_memory", "retention_seconds": 604800}
