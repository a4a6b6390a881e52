from typing import Any, Dict

from pydantic import ValidationError

from telemetry_schema import (
    MAX_ENVELOPE_BYTES,
    MAX_PROPERTIES_BYTES,
    Envelope,
    EventContext,
    encoded_size,
    has_unstorable_number,
    scrub,
)

from .exceptions import RecordRejected


def validate_envelope(raw: Any) -> Envelope:
    if not isinstance(raw, dict):
        raise RecordRejected("not_an_object")

    if encoded_size(raw) > MAX_ENVELOPE_BYTES:
        raise RecordRejected("envelope_too_large")

    properties = raw.get("properties")
    if properties is not None:
        if not isinstance(properties, dict):
            raise RecordRejected("invalid_properties")
        if encoded_size(properties) > MAX_PROPERTIES_BYTES:
            raise RecordRejected("properties_too_large")
        if has_unstorable_number(properties):
            raise RecordRejected("invalid_number")

    context = raw.get("context")
    if context is not None and not isinstance(context, dict):
        raise RecordRejected("invalid_context")

    try:
        return Envelope.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "envelope"
        if first.get("type") == "missing":
            raise RecordRejected(f"missing_field:{field}") from e
        raise RecordRejected(f"invalid_field:{field}") from e


def sanitize_envelope(envelope: Envelope) -> Envelope:
    properties, removed_props = scrub(envelope.properties)
    context, removed_ctx = scrub(envelope.context.model_dump(exclude_none=True))
    if not removed_props and not removed_ctx:
        return envelope

    update: Dict[str, Any] = {"properties": properties}
    if removed_ctx:
        update["context"] = EventContext.model_validate(context)
    return envelope.model_copy(update=update)
