import json
import time
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from telemetry_schema import MAX_EVENTS_PER_REQUEST, MAX_PAYLOAD_BYTES

from .enrichment import enrich_envelope
from .exceptions import (
    MalformedRequestError,
    PayloadTooLargeError,
    RecordRejected,
    TooManyEventsError,
)
from .store import EventStore
from .validation import sanitize_envelope, validate_envelope

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    received: int = 0
    inserted: int = 0
    duplicates: int = 0
    dropped: int = 0
    rejected: List[Dict[str, Optional[str]]] = field(default_factory=list)
    store_write_latency: float = 0.0

    def to_body(self) -> Dict[str, Any]:
        return {
            "received": self.received,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "dropped": self.dropped,
            "rejected": self.rejected,
        }


def check_content_length(value: Optional[str]):
    """Reject a request up front when its declared length is already over the limit."""
    if value and value.isdigit() and int(value) > MAX_PAYLOAD_BYTES:
        raise PayloadTooLargeError(f"request body exceeds {MAX_PAYLOAD_BYTES} bytes")


def parse_request(body: bytes) -> List[Any]:
    """
    Decode a raw request body into its list of envelopes.

    Every check here rejects the request as a whole before any envelope is
    looked at, so a rejected request has no partial effects.
    """
    if len(body) > MAX_PAYLOAD_BYTES:
        raise PayloadTooLargeError(f"request body exceeds {MAX_PAYLOAD_BYTES} bytes")

    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedRequestError("request body is not valid JSON")

    if not isinstance(payload, dict) or not isinstance(payload.get("events"), list):
        raise MalformedRequestError("request body must be an object with an 'events' list")

    events = payload["events"]
    if len(events) > MAX_EVENTS_PER_REQUEST:
        raise TooManyEventsError(
            f"{len(events)} events exceeds the limit of {MAX_EVENTS_PER_REQUEST} per request"
        )
    return events


def _drop(result: BatchResult, event_id: Optional[str], reason: str):
    result.dropped += 1
    result.rejected.append({"event_id": event_id, "reason": reason})
    logger.info(f"Dropped event {event_id}: {reason}")


class BatchProcessor:
    def __init__(
        self,
        store: EventStore,
        ip_hash_salt: str = "",
        clock: Callable[[], datetime] = None,
    ):
        self._store = store
        self._ip_hash_salt = ip_hash_salt
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def process(
        self,
        events: List[Any],
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> BatchResult:
        result = BatchResult(received=len(events))
        received_at = self._clock()

        for raw in events:
            try:
                envelope = validate_envelope(raw)
            except RecordRejected as e:
                _drop(result, raw.get("event_id") if isinstance(raw, dict) else None, e.reason)
                continue

            envelope = sanitize_envelope(envelope)
            envelope = enrich_envelope(
                envelope, received_at, client_ip, user_agent, self._ip_hash_salt
            )

            write_start = time.time()
            try:
                inserted = self._store.insert(envelope.to_wire())
            except RecordRejected as e:
                _drop(result, envelope.event_id, e.reason)
                continue
            finally:
                result.store_write_latency += time.time() - write_start

            if inserted:
                result.inserted += 1
            else:
                result.duplicates += 1

        logger.info(
            f"Processed batch received={result.received} inserted={result.inserted} "
            f"duplicates={result.duplicates} dropped={result.dropped}"
        )
        return result
