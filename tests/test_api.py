import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ingestion_service.api import app
from ingestion_service.config import Settings
from ingestion_service.dependencies import get_settings, get_store
from ingestion_service.exceptions import StoreUnavailableError

from conftest import make_envelope


@pytest.fixture
def settings():
    return Settings(api_key="s3cret", ip_hash_salt="pepper", store_backend="memory")


@pytest.fixture
def client(settings, event_store):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: event_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


AUTH = {"Authorization": "Bearer s3cret"}


def post(client, events, headers=AUTH):
    return client.post("/events", content=json.dumps({"events": events}), headers=headers)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["store"] is True


def test_accepts_batch_and_reports_counts(client, event_store):
    events = [make_envelope(), make_envelope(), make_envelope(platform="palm")]

    resp = post(client, events)

    assert resp.status_code == 200
    body = resp.json()
    assert (body["received"], body["inserted"], body["duplicates"], body["dropped"]) == (3, 2, 0, 1)
    assert body["rejected"][0]["event_id"] == events[2]["event_id"]
    assert event_store.count() == 2


def test_resubmission_reports_duplicates(client, event_store):
    events = [make_envelope(), make_envelope()]
    post(client, events)

    body = post(client, events).json()

    assert body == {"received": 2, "inserted": 0, "duplicates": 2, "dropped": 0, "rejected": []}
    assert event_store.count() == 2


def test_forwarded_address_is_hashed(client, event_store):
    envelope = make_envelope()

    post(client, [envelope], headers={**AUTH, "X-Forwarded-For": "198.51.100.4, 10.0.0.1"})

    stored = event_store.get(envelope["event_id"])
    assert stored["client_ip_hash"]
    assert "198.51.100.4" not in json.dumps(stored)


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "s3cret"}])
def test_rejects_bad_credentials(client, event_store, headers):
    resp = post(client, [make_envelope()], headers=headers)

    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"
    assert event_store.count() == 0


def test_auth_disabled_without_configured_key(client, settings, event_store):
    app.dependency_overrides[get_settings] = lambda: Settings(store_backend="memory")

    resp = post(client, [make_envelope()], headers={})

    assert resp.status_code == 200
    assert event_store.count() == 1


def test_too_many_events_rejected_without_partial_processing(client, event_store):
    resp = post(client, [make_envelope() for _ in range(51)])

    assert resp.status_code == 413
    assert resp.json()["error"] == "too_many_events"
    assert event_store.count() == 0


def test_oversized_payload_rejected(client, event_store):
    resp = client.post("/events", content=b" " * (1024 * 1024 + 1), headers=AUTH)

    assert resp.status_code == 413
    assert resp.json()["error"] == "payload_too_large"


def test_malformed_body_rejected(client):
    resp = client.post("/events", content=b"[1, 2", headers=AUTH)

    assert resp.status_code == 400
    assert resp.json()["error"] == "malformed_request"


def test_store_outage_is_retryable(client):
    broken = MagicMock()
    broken.insert.side_effect = StoreUnavailableError("read timeout")
    app.dependency_overrides[get_store] = lambda: broken

    resp = post(client, [make_envelope()])

    assert resp.status_code == 503
    assert resp.json()["error"] == "store_unavailable"


def test_declared_oversize_rejected_before_body_is_read(client, event_store):
    resp = client.post(
        "/events",
        content=json.dumps({"events": [make_envelope()]}),
        headers={**AUTH, "Content-Length": str(1024 * 1024 + 1)},
    )

    assert resp.status_code == 413
    assert resp.json()["error"] == "payload_too_large"
    assert event_store.count() == 0
