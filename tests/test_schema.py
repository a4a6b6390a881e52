from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from telemetry_schema import Envelope, format_ts, is_pii_key, scrub

from conftest import make_envelope


def test_scrub_removes_denylisted_keys_at_any_depth():
    clean, removed = scrub(
        {
            "email": "a@b.c",
            "plan": "pro",
            "profile": {"First_Name": "Ada", "age_bucket": "30-39"},
            "items": [{"phone-number": "555", "sku": "x"}],
        }
    )

    assert clean == {"plan": "pro", "profile": {"age_bucket": "30-39"}, "items": [{"sku": "x"}]}
    assert sorted(removed) == ["email", "items[0].phone-number", "profile.First_Name"]


@pytest.mark.parametrize("key", ["email", "E-Mail", "ip_address", "Access.Token", "DOB"])
def test_pii_key_matching_ignores_case_and_separators(key):
    assert is_pii_key(key)


def test_non_pii_keys_pass():
    assert not is_pii_key("screen_name_length")
    assert not is_pii_key("plan")
    assert not is_pii_key("button")


def test_envelope_normalizes_client_timestamp():
    envelope = Envelope.model_validate(make_envelope(client_ts="2026-10-19T14:00:00+02:00"))
    assert envelope.client_ts == "2026-10-19T12:00:00.000Z"


def test_envelope_rejects_unknown_platform():
    with pytest.raises(ValidationError):
        Envelope.model_validate(make_envelope(platform="symbian"))


def test_envelope_rejects_unsupported_schema_version():
    with pytest.raises(ValidationError):
        Envelope.model_validate(make_envelope(schema_version=99))


def test_envelope_is_immutable():
    envelope = Envelope.model_validate(make_envelope())
    with pytest.raises(ValidationError):
        envelope.event_name = "changed"


def test_to_wire_omits_unset_server_fields():
    wire = Envelope.model_validate(make_envelope()).to_wire()
    assert "server_ts" not in wire
    assert "client_ip_hash" not in wire
    assert wire["platform"] == "ios"
    assert wire["environment"] == "production"


def test_format_ts_treats_naive_as_utc():
    assert format_ts(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05.000Z"
    assert format_ts(datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "2026-01-02T03:04:05.000Z"
