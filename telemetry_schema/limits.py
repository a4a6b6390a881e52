import json
import math
from decimal import Decimal
from typing import Any

SCHEMA_VERSION = 1
SUPPORTED_SCHEMA_VERSIONS = frozenset({SCHEMA_VERSION})

MAX_PAYLOAD_BYTES = 1024 * 1024
MAX_EVENTS_PER_REQUEST = 50
MAX_ENVELOPE_BYTES = 10 * 1024
MAX_PROPERTIES_BYTES = 5 * 1024

MAX_NAME_LENGTH = 128


def encoded_size(value: Any) -> int:
    """Size in bytes of ``value`` as compact UTF-8 JSON."""
    return len(
        json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")
    )


# numbers boto3 will serialize for DynamoDB: 38 significant digits, exponent -128..125
MAX_NUMBER_DIGITS = 38
MIN_NUMBER_EXPONENT = -128
MAX_NUMBER_EXPONENT = 125


def is_storable_number(value) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, int):
        return len(str(abs(value))) <= MAX_NUMBER_DIGITS
    if isinstance(value, float):
        if not math.isfinite(value):
            return False
        number = Decimal(repr(value))
        if not number:
            return True
        return MIN_NUMBER_EXPONENT <= number.adjusted() <= MAX_NUMBER_EXPONENT
    return True


def has_unstorable_number(value: Any) -> bool:
    """True when any number nested in ``value`` cannot be kept without loss."""
    if isinstance(value, dict):
        return any(has_unstorable_number(v) for v in value.values())
    if isinstance(value, list):
        return any(has_unstorable_number(v) for v in value)
    return not is_storable_number(value)
