"""
API tests for the Wulang webhook service.
"""
import base64
import json

import pytest
from fastapi.testclient import TestClient

from conftest import PNG_BYTES, TEST_SECRET, FakeResponder, make_settings
from wulang.api import metrics
from wulang.core.security import compute_signature
from wulang.main import create_app
from wulang.services.orchestrator import APOLOGY_MESSAGE


@pytest.fixture
def app(tmp_path, responder):
    return create_app(make_settings(tmp_path), responder=responder)


@pytest.fixture
def client(app):
    """Create a test client; entering it runs the lifespan (tables, scheduler)."""
    with TestClient(app) as test_client:
        yield test_client


def sign_body(body: bytes, secret: str = TEST_SECRET) -> str:
    """Generate HMAC-SHA256 signature for a raw body."""
    return compute_signature(secret, body)


def post_signed(client, path, payload, secret=TEST_SECRET):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        path,
        content=body,
        headers={"X-Signature": sign_body(body, secret), "Content-Type": "application/json"},
    )


def message(message_id, text, sender="6281234567890@c.us", **extra):
    payload = {"message_id": message_id, "from": sender, "text": text}
    payload.update(extra)
    return payload


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_liveness_always_returns_ok(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readiness_returns_ok_when_configured(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["webhook_secret"] == "ok"
        assert data["checks"]["ai_responder"] == "not configured"
        assert data["checks"]["maintenance_scheduler"] == "running"

    def test_readiness_fails_without_secret(self, tmp_path):
        app = create_app(make_settings(tmp_path, webhook_secret=None), responder=FakeResponder())
        with TestClient(app) as client:
            response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["webhook_secret"] == "not configured"


class TestWebhookSecurity:
    """Signature and payload validation for POST /webhook."""

    def test_webhook_requires_signature(self, client):
        response = client.post("/webhook", json=message("m1", "wulang hi"))
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid signature"

    def test_webhook_rejects_invalid_signature(self, client):
        response = post_signed(client, "/webhook", message("m1", "wulang hi"), secret="wrong-secret")
        assert response.status_code == 401

    def test_webhook_rejects_invalid_json(self, client):
        body = b"{not json"
        response = client.post("/webhook", content=body, headers={"X-Signature": sign_body(body)})
        assert response.status_code == 422

    def test_webhook_rejects_missing_message_id(self, client):
        response = post_signed(client, "/webhook", {"from": "6281234567890@c.us", "text": "wulang"})
        assert response.status_code == 422

    def test_webhook_rejects_bad_attachment_encoding(self, client):
        payload = message("m1", "", attachment={"data": "***", "mime_type": "image/png"})
        response = post_signed(client, "/webhook", payload)
        assert response.status_code == 422


class TestWebhookConversation:
    """Conversation behaviour through POST /webhook."""

    def test_trigger_message_gets_ai_reply(self, client, responder):
        response = post_signed(client, "/webhook", message("m1", "wulang 1+1?"))

        assert response.status_code == 200
        data = response.json()
        assert data["branch"] == "normal"
        assert data["responded"] is True
        assert data["reply"] == "reply 1"
        assert data["delivered"] is False
        assert responder.calls[0][1].text == "wulang 1+1?"

    def test_duplicate_delivery_is_acknowledged_silently(self, client, responder):
        post_signed(client, "/webhook", message("m1", "wulang hi"))
        response = post_signed(client, "/webhook", message("m1", "wulang hi"))

        assert response.status_code == 200
        assert response.json()["branch"] == "rejected"
        assert response.json()["reply"] is None
        assert len(responder.calls) == 1

    def test_group_messages_are_ignored(self, client, responder):
        response = post_signed(client, "/webhook", message("m1", "wulang hi", sender="1203630@g.us"))
        assert response.json()["branch"] == "rejected"
        assert responder.calls == []

    def test_plain_text_gets_trigger_instruction(self, client):
        response = post_signed(client, "/webhook", message("m1", "hello"))
        data = response.json()
        assert data["branch"] == "no_trigger"
        assert "wulang" in data["reply"]

    def test_bare_image_then_question(self, client, responder):
        encoded = base64.b64encode(PNG_BYTES).decode("ascii")
        staged = post_signed(
            client, "/webhook",
            message("m1", None, attachment={"data": encoded, "filename": "p.png", "mime_type": "image/png"}),
        )
        assert staged.json()["branch"] == "staged_media"
        assert client.get("/stats").json()["pending_media"] == 1

        answered = post_signed(client, "/webhook", message("m2", "what is in it?"))

        assert answered.json()["branch"] == "pending_media"
        assert responder.calls[0][1].payload == PNG_BYTES
        assert client.get("/stats").json()["pending_media"] == 0

    def test_responder_failure_returns_apology(self, client, responder):
        from wulang.core.errors import AIServiceError
        responder.error = AIServiceError("down")

        response = post_signed(client, "/webhook", message("m1", "wulang hi"))

        assert response.status_code == 200
        assert response.json()["reply"] == APOLOGY_MESSAGE

    def test_sender_name_is_passed_on(self, client, responder):
        post_signed(client, "/webhook", message("m1", "wulang hi", sender_name="Budi"))
        assert responder.calls[0][1].sender_name == "Budi"

    def test_address_without_sender_is_invalid(self, client, responder):
        response = post_signed(client, "/webhook", message("m1", "wulang hi", sender="@c.us"))

        assert response.status_code == 200
        assert response.json()["branch"] == "invalid"
        assert response.json()["reply"] == APOLOGY_MESSAGE
        assert responder.calls == []
        text = client.get("/metrics").text
        assert 'conversation_decisions_total{branch="invalid",outcome="error"}' in text

    def test_reset_clears_history(self, client):
        post_signed(client, "/webhook", message("m1", "wulang hi"))
        response = post_signed(client, "/webhook", message("m2", "!reset"))

        assert response.json()["branch"] == "reset"
        assert client.get("/conversations/6281234567890").json()["threads"] == []


class TestConversationEndpoints:
    """Tests for GET /conversations."""

    def test_lists_threads_and_messages(self, client):
        post_signed(client, "/webhook", message("m1", "wulang hi"))
        post_signed(client, "/webhook", message("m2", "and then?"))

        threads = client.get("/conversations/6281234567890").json()
        assert len(threads["threads"]) == 1
        assert threads["threads"][0]["message_count"] == 4
        assert threads["active_thread_id"] == threads["threads"][0]["id"]

        page = client.get("/conversations/6281234567890/messages", params={"limit": 2, "offset": 1}).json()
        assert page["total"] == 4
        assert [m["content"] for m in page["data"]] == ["reply 1", "and then?"]
        assert [m["role"] for m in page["data"]] == ["bot", "user"]

    def test_unknown_sender_has_no_messages(self, client):
        page = client.get("/conversations/000/messages").json()
        assert page["thread_id"] is None
        assert page["data"] == []

    def test_limit_is_validated(self, client):
        response = client.get("/conversations/000/messages", params={"limit": 0})
        assert response.status_code == 422


class TestStatsAndMetrics:
    """Tests for GET /stats and GET /metrics."""

    def test_stats_count_threads_and_messages(self, client):
        post_signed(client, "/webhook", message("m1", "wulang hi"))
        post_signed(client, "/webhook", message("m2", "wulang hi", sender="6289999@c.us"))

        data = client.get("/stats").json()

        assert data["total_threads"] == 2
        assert data["total_messages"] == 4
        assert data["senders_count"] == 2
        assert data["messages_per_role"] == {"user": 2, "bot": 2}
        assert data["total_media"] == 0
        assert data["last_activity_at"] is not None

    def test_metrics_include_decisions(self, client):
        post_signed(client, "/webhook", message("m1", "hello"))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'conversation_decisions_total{branch="no_trigger",outcome="ok"}' in response.text
        assert "http_requests_total" in response.text

    def test_request_metrics_use_route_templates(self, client):
        for i in range(50):
            client.get(f"/conversations/628120000{i:02d}")
        client.get("/no-such-page/12345")

        text = client.get("/metrics").text

        assert 'path="/conversations/{sender_id}"' in text
        assert 'path="unmatched"' in text
        assert "62812000" not in text
        assert "no-such-page" not in text
        paths = {path for (_, path, _) in metrics._requests_total}
        assert not any(path.startswith("/conversations/6") for path in paths)


class TestMaintenanceEndpoint:
    """Tests for POST /maintenance/run."""

    def test_requires_signature(self, client):
        assert client.post("/maintenance/run", json={}).status_code == 401

    def test_runs_maintenance(self, client):
        response = post_signed(client, "/maintenance/run", {})
        assert response.status_code == 200
        assert response.json() == {
            "deleted_threads": 0,
            "expired_pending_media": 0,
            "deleted_media_files": 0,
            "errors": [],
        }
