import uuid
from unittest.mock import MagicMock

import pytest
from boto3.dynamodb.types import TypeSerializer

from ingestion_service import dependencies
from ingestion_service.store import InMemoryEventStore
from telemetry_agent.config import AgentConfig
from telemetry_agent.storage import MemoryKeyValueStore


def make_envelope(**overrides):
    envelope = {
        "schema_version": 1,
        "event_id": str(uuid.uuid4()),
        "event_name": "button_tapped",
        "client_ts": "2026-10-19T12:00:00.000Z",
        "anonymous_id": "anon-1",
        "session_id": "session-1",
        "platform": "ios",
        "app_name": "demo",
        "app_version": "1.2.3",
        "build": "456",
        "environment": "production",
        "context": {"screen": "home", "locale": "en-US"},
        "properties": {"button": "buy"},
    }
    envelope.update(overrides)
    return envelope


def serializing_table():
    """A table mock that runs items through boto3's real attribute serializer."""
    table = MagicMock()
    serializer = TypeSerializer()
    table.put_item.side_effect = lambda **kwargs: {
        k: serializer.serialize(v) for k, v in kwargs["Item"].items()
    }
    return table


@pytest.fixture
def agent_config(tmp_path):
    return AgentConfig(
        endpoint_url="http://ingest.test/events",
        api_key="test-key",
        app_name="demo",
        app_version="1.2.3",
        build="456",
        platform="ios",
        environment="production",
        storage_dir=str(tmp_path / "telemetry"),
        batch_size=50,
        flush_interval=3600.0,
    )


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture(autouse=True)
def _reset_service_caches(monkeypatch):
    for name in (
        "EVENTS_TABLE",
        "DYNAMODB_STORE",
        "INGESTION_API_KEY",
        "API_KEY_SECRET_ARN",
        "IP_HASH_SALT",
    ):
        monkeypatch.delenv(name, raising=False)
    dependencies.get_settings.cache_clear()
    dependencies.get_store.cache_clear()
    yield
    dependencies.get_settings.cache_clear()
    dependencies.get_store.cache_clear()
