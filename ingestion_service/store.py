import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from telemetry_schema import format_ts, parse_ts

TimeBound = Union[str, datetime, None]

DEFAULT_QUERY_LIMIT = 100


def normalize_bound(value: TimeBound) -> Optional[str]:
    if value is None:
        return None
    return format_ts(parse_ts(value))


class EventStore(ABC):
    """Append-only collection of enriched envelopes keyed by ``event_id``."""

    @abstractmethod
    def insert(self, record: Dict[str, Any]) -> bool:
        """
        Insert ``record`` unless its ``event_id`` is already stored.

        Returns True when the record was written and False when it was a
        duplicate. Raises RecordRejected when this one record cannot be
        stored and StoreUnavailableError when the store itself fails.
        """

    @abstractmethod
    def get(self, event_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def recent(self, limit: int = DEFAULT_QUERY_LIMIT) -> List[Dict[str, Any]]:
        """Newest records first, ordered by client timestamp."""

    @abstractmethod
    def for_user(
        self,
        user_id: str,
        start: TimeBound = None,
        end: TimeBound = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def for_anonymous(
        self,
        anonymous_id: str,
        start: TimeBound = None,
        end: TimeBound = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Dict[str, Any]]:
        ...

    def ping(self) -> bool:
        return True


class InMemoryEventStore(EventStore):
    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def insert(self, record: Dict[str, Any]) -> bool:
        event_id = record["event_id"]
        with self._lock:
            if event_id in self._records:
                return False
            self._records[event_id] = dict(record)
            return True

    def get(self, event_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(event_id)
        return dict(record) if record is not None else None

    def count(self) -> int:
        return len(self._records)

    def recent(self, limit: int = DEFAULT_QUERY_LIMIT) -> List[Dict[str, Any]]:
        return self._scan(lambda r: True, None, None, limit)

    def for_user(self, user_id, start=None, end=None, limit=DEFAULT_QUERY_LIMIT):
        return self._scan(lambda r: r.get("user_id") == user_id, start, end, limit)

    def for_anonymous(self, anonymous_id, start=None, end=None, limit=DEFAULT_QUERY_LIMIT):
        return self._scan(lambda r: r.get("anonymous_id") == anonymous_id, start, end, limit)

    def _scan(self, predicate, start: TimeBound, end: TimeBound, limit: int):
        lower = normalize_bound(start)
        upper = normalize_bound(end)
        with self._lock:
            records = list(self._records.values())
        matches = [
            dict(r)
            for r in records
            if predicate(r)
            and (lower is None or r["client_ts"] >= lower)
            and (upper is None or r["client_ts"] <= upper)
        ]
        matches.sort(key=lambda r: r["client_ts"], reverse=True)
        return matches[:limit]
