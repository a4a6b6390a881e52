from .limits import (
    MAX_ENVELOPE_BYTES,
    MAX_EVENTS_PER_REQUEST,
    MAX_PAYLOAD_BYTES,
    MAX_PROPERTIES_BYTES,
    SCHEMA_VERSION,
    encoded_size,
    has_unstorable_number,
)
from .models import Envelope, Environment, EventContext, Platform, format_ts, parse_ts
from .pii import PII_DENYLIST, is_pii_key, scrub

__all__ = [
    "Envelope",
    "Environment",
    "EventContext",
    "Platform",
    "format_ts",
    "parse_ts",
    "PII_DENYLIST",
    "is_pii_key",
    "scrub",
    "MAX_ENVELOPE_BYTES",
    "MAX_EVENTS_PER_REQUEST",
    "MAX_PAYLOAD_BYTES",
    "MAX_PROPERTIES_BYTES",
    "SCHEMA_VERSION",
    "encoded_size",
    "has_unstorable_number",
]
