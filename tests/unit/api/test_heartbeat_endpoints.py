"""
Tests for the signed heartbeat endpoint.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import register_error_handlers
from api.heartbeat_endpoints import router
from services.heartbeat_ingest import HeartbeatRecordResult
from services.request_authenticator import RequestAuthenticator, sign_request


@pytest.fixture
def ingest_service():
    service = MagicMock()
    service.record_heartbeat_and_reconcile = AsyncMock(return_value=HeartbeatRecordResult(heartbeat_id=42))
    return service


@pytest.fixture
def app(api_secret, ingest_service):
    """Create test FastAPI app with the heartbeat router mounted under /api."""
    test_app = FastAPI()
    register_error_handlers(test_app)
    test_app.include_router(router, prefix="/api")
    test_app.state.authenticator = RequestAuthenticator(secret=api_secret, api_prefix="/api")
    test_app.state.ingest_service = ingest_service
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def heartbeat_body():
    return {"connection_state": "up", "timestamp": "2024-12-02T13:07:52.000Z", "ipv4": "192.0.2.10"}


def signed_post(client, secret, payload, path="/heartbeat", nonce=None, headers=None):
    body = json.dumps(payload).encode("utf-8")
    request_headers = sign_request("POST", path, body, secret, nonce=nonce)
    request_headers["Content-Type"] = "application/json"
    request_headers.update(headers or {})
    return client.post("/api/heartbeat", content=body, headers=request_headers)


class TestHeartbeatEndpoint:
    """Test POST /api/heartbeat."""

    def test_records_signed_heartbeat(self, client, api_secret, heartbeat_body, ingest_service):
        response = signed_post(client, api_secret, heartbeat_body)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Heartbeat recorded", "id": 42}

        ingest_service.record_heartbeat_and_reconcile.assert_awaited_once()
        payload = ingest_service.record_heartbeat_and_reconcile.call_args.args[0]
        assert payload.connection_state == "up"
        assert payload.ipv4 == "192.0.2.10"

    def test_unknown_fields_reach_metadata(self, client, api_secret, heartbeat_body, ingest_service):
        heartbeat_body["uptime_seconds"] = 3600
        heartbeat_body["firmware"] = None

        response = signed_post(client, api_secret, heartbeat_body)

        assert response.status_code == 200
        payload = ingest_service.record_heartbeat_and_reconcile.call_args.args[0]
        assert payload.extra_metadata() == {"uptime_seconds": 3600}

    def test_unsigned_request_is_rejected(self, client, heartbeat_body, ingest_service):
        response = client.post("/api/heartbeat", json=heartbeat_body)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "message": "Authentication failed"}
        ingest_service.record_heartbeat_and_reconcile.assert_not_called()

    def test_wrong_secret_is_rejected(self, client, api_secret, heartbeat_body):
        response = signed_post(client, api_secret[::-1], heartbeat_body)

        assert response.status_code == 401
        assert response.json()["message"] == "Authentication failed"

    def test_signature_for_other_path_is_rejected(self, client, api_secret, heartbeat_body):
        response = signed_post(client, api_secret, heartbeat_body, path="/other")

        assert response.status_code == 401

    def test_tampered_body_is_rejected(self, client, api_secret, heartbeat_body, ingest_service):
        body = json.dumps(heartbeat_body).encode("utf-8")
        headers = sign_request("POST", "/heartbeat", body, api_secret)
        headers["Content-Type"] = "application/json"
        tampered = body.replace(b'"up"', b'"down"')

        response = client.post("/api/heartbeat", content=tampered, headers=headers)

        assert response.status_code == 401
        ingest_service.record_heartbeat_and_reconcile.assert_not_called()

    def test_replayed_request_is_rejected(self, client, api_secret, heartbeat_body, ingest_service):
        body = json.dumps(heartbeat_body).encode("utf-8")
        headers = sign_request("POST", "/heartbeat", body, api_secret)
        headers["Content-Type"] = "application/json"

        first = client.post("/api/heartbeat", content=body, headers=headers)
        second = client.post("/api/heartbeat", content=body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 401
        assert ingest_service.record_heartbeat_and_reconcile.await_count == 1

    def test_invalid_timestamp_is_bad_request(self, client, api_secret, heartbeat_body, ingest_service):
        heartbeat_body["timestamp"] = "not-a-date"

        response = signed_post(client, api_secret, heartbeat_body)

        assert response.status_code == 400
        assert response.json() == {"error": "Bad Request", "message": "Invalid timestamp format"}
        ingest_service.record_heartbeat_and_reconcile.assert_not_called()

    def test_missing_fields_fail_validation(self, client, api_secret):
        response = signed_post(client, api_secret, {"timestamp": "2024-12-02T13:07:52Z"})

        assert response.status_code == 422

    def test_storage_failure_is_server_error(self, client, api_secret, heartbeat_body, ingest_service):
        ingest_service.record_heartbeat_and_reconcile.side_effect = ConnectionError("database unavailable")

        response = signed_post(client, api_secret, heartbeat_body)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error", "message": "Failed to record heartbeat"}

    def test_missing_secret_is_server_error(self, app, client, api_secret, heartbeat_body):
        app.state.authenticator = RequestAuthenticator(secret=None)

        response = signed_post(client, api_secret, heartbeat_body)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error", "message": "API secret not configured"}

    def test_short_secret_is_server_error(self, app, client, heartbeat_body):
        short_secret = "x" * 20
        app.state.authenticator = RequestAuthenticator(secret=short_secret)

        response = signed_post(client, short_secret, heartbeat_body)

        assert response.status_code == 500
        assert response.json()["message"] == "API secret must be at least 32 characters"
