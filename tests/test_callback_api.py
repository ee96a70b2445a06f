"""
API tests for the callback relay HTTP surface.
Uses FastAPI's TestClient with an in-memory registry.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.callback_api.dependencies import RelayServices
from src.callback_api.main import create_app
from src.shared.config import DatabaseSettings, Environment, Settings
import src.webhooks as webhooks
from src.webhooks.exceptions import (
    AuthenticationError, DuplicateJobError, JobNotFoundError, ReplyError, ValidationError, WebhookError
)
from src.webhooks.metrics import WebhookMetrics
from src.webhooks.security import WebhookSecurity


@pytest.fixture
def settings():
    return Settings(
        environment=Environment.TESTING,
        public_base_url="https://relay.example.com",
        database=DatabaseSettings(database_url="sqlite+aiosqlite:///:memory:"),
    )


@pytest.fixture
def delivery_service():
    service = MagicMock()
    service.deliver = AsyncMock(return_value=True)
    return service


@pytest.fixture
def completion_handler():
    return AsyncMock(return_value={"replySent": True, "replyId": "reply-1"})


@pytest.fixture
def services(settings, delivery_service, completion_handler):
    return RelayServices.build(
        settings,
        delivery_service=delivery_service,
        completion_handler=completion_handler,
        metrics=WebhookMetrics(),
    )


@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings, services)) as test_client:
        yield test_client


def register(client, job_id="bc-1", **metadata):
    response = client.post("/api/jobs", json={
        "job_id": job_id,
        "callback_url": "https://example.com/hook",
        "metadata": metadata,
    })
    assert response.status_code == 201
    return response.json()


def status_change(job_id="bc-1", status="FINISHED"):
    return json.dumps({
        "event": "statusChange",
        "timestamp": "2025-01-01T00:10:00Z",
        "id": job_id,
        "status": status,
        "source": {"repository": "https://github.com/o/r"},
        "target": {"prUrl": "https://github.com/o/r/pull/1"},
        "summary": "Done",
    }).encode()


class TestJobsApi:
    """Test job registration endpoints."""

    def test_register_job(self, client):
        data = register(client, originalEmailId="em-1")

        assert data["job_id"] == "bc-1"
        assert len(data["signing_secret"]) >= 64
        assert data["webhook_url"] == "https://relay.example.com/api/agent-webhooks/bc-1"

    def test_get_job_masks_secret(self, client):
        secret = register(client, originalEmailId="em-1")["signing_secret"]

        response = client.get("/api/jobs/bc-1")

        assert response.status_code == 200
        data = response.json()
        assert data["has_secret"] is True
        assert data["signing_secret"] != secret
        assert data["signing_secret"].startswith(secret[:4])
        assert data["metadata"] == {"originalEmailId": "em-1"}

    def test_get_unknown_job(self, client):
        response = client.get("/api/jobs/missing")

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "job_not_found"
        assert response.json()["error"]["status_code"] == 404

    def test_duplicate_registration(self, client):
        register(client)

        response = client.post("/api/jobs", json={"job_id": "bc-1", "callback_url": "https://example.com/other"})

        assert response.status_code == 409
        assert response.json()["error"]["type"] == "duplicate_job"

    def test_invalid_callback_url(self, client):
        response = client.post("/api/jobs", json={"job_id": "bc-1", "callback_url": "ftp://example.com"})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "validation_error"

    def test_missing_fields(self, client):
        response = client.post("/api/jobs", json={"callback_url": "https://example.com/hook"})

        assert response.status_code == 422

    def test_terminal_status_schedules_notification(self, settings, services, delivery_service):
        with TestClient(create_app(settings, services)) as client:
            register(client)

            response = client.post("/api/jobs/bc-1/status", json={"status": "FINISHED", "summary": "Done"})

            assert response.status_code == 202
            assert response.json()["notification"] == "scheduled"

        # Shutdown drains background notifications
        delivery_service.deliver.assert_awaited_once()
        assert delivery_service.deliver.call_args.args[0] == "https://example.com/hook"

    def test_non_terminal_status_is_skipped(self, client, delivery_service):
        register(client)

        response = client.post("/api/jobs/bc-1/status", json={"status": "RUNNING"})

        assert response.status_code == 202
        assert response.json()["notification"] == "skipped"
        delivery_service.deliver.assert_not_awaited()

    def test_status_for_unknown_job(self, client):
        response = client.post("/api/jobs/ghost/status", json={"status": "FINISHED"})

        assert response.status_code == 404


class TestAgentWebhookEndpoint:
    """Test the inbound callback endpoint end to end."""

    def test_signed_callback_is_handled(self, client, completion_handler):
        secret = register(client, originalEmailId="em-1")["signing_secret"]
        body = status_change()

        response = client.post(
            "/api/agent-webhooks/bc-1",
            content=body,
            headers={"X-Webhook-Signature": WebhookSecurity.sign(secret, body), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["received"] is True
        assert data["authenticated"] is True
        assert data["replySent"] is True
        completion_handler.assert_awaited_once()

    def test_tampered_callback(self, client, completion_handler):
        secret = register(client)["signing_secret"]
        body = status_change()

        response = client.post(
            "/api/agent-webhooks/bc-1",
            content=body.replace(b"Done", b"Owned"),
            headers={"X-Webhook-Signature": WebhookSecurity.sign(secret, body)},
        )

        assert response.status_code == 401
        completion_handler.assert_not_awaited()

    def test_running_status_is_ignored(self, client, completion_handler):
        register(client)

        response = client.post("/api/agent-webhooks/bc-1", content=status_change(status="RUNNING"))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        completion_handler.assert_not_awaited()

    def test_unknown_job(self, client):
        response = client.post("/api/agent-webhooks/ghost", content=status_change(job_id="ghost"))

        assert response.status_code == 404

    def test_malformed_body(self, client):
        response = client.post("/api/agent-webhooks/bc-1", content=b"{not json")

        assert response.status_code == 400

    def test_handler_failure(self, client, completion_handler):
        secret = register(client)["signing_secret"]
        completion_handler.side_effect = RuntimeError("mail down")
        body = status_change()

        response = client.post(
            "/api/agent-webhooks/bc-1",
            content=body,
            headers={"X-Webhook-Signature": WebhookSecurity.sign(secret, body)},
        )

        assert response.status_code == 500


class TestErrorTaxonomy:
    """Every exported error maps to the status the HTTP surface returns."""

    @pytest.mark.parametrize("error, status_code, error_type", [
        (ValidationError("bad"), 400, "validation_error"),
        (AuthenticationError("bad signature"), 401, "authentication_error"),
        (JobNotFoundError("bc-1"), 404, "job_not_found"),
        (DuplicateJobError("bc-1"), 409, "duplicate_job"),
        (ReplyError("mail down"), 500, "reply_error"),
    ])
    def test_status_codes(self, error, status_code, error_type):
        assert error.status_code == status_code
        assert error.error_type == error_type

    def test_exported_errors(self):
        exported = {
            name for name in webhooks.__all__
            if isinstance(getattr(webhooks, name), type) and issubclass(getattr(webhooks, name), WebhookError)
        }

        assert exported == {
            "WebhookError", "ValidationError", "AuthenticationError",
            "JobNotFoundError", "DuplicateJobError", "ReplyError",
        }

    def test_error_envelope(self, client):
        register(client)

        response = client.post("/api/jobs", json={"job_id": "bc-1", "callback_url": "https://example.com/hook"})

        assert response.json()["error"] == {
            "type": "duplicate_job",
            "message": "Job already registered: bc-1",
            "status_code": 409,
        }


class TestHealth:
    def test_health(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "corr-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["status_poller"]["enabled"] is False
        assert "delivery_attempts" in data["metrics"]
        assert response.headers["X-Correlation-ID"] == "corr-1"
