import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from telemetry_schema import Envelope

from .storage import QUEUE_KEY, KeyValueStore

logger = logging.getLogger(__name__)

Entry = Dict[str, Any]


class DurableQueue:
    """
    Bounded FIFO of wire-format envelopes, persisted after every mutation.

    When the bound is exceeded the oldest entries are evicted. Persistence is
    best-effort: a failed write is logged and the in-memory list stays
    authoritative for the rest of the process lifetime.

    Entries are removed by event id rather than by position, so events
    enqueued while a batch is in flight are never lost when that batch is
    acknowledged.
    """

    # Log aggregate eviction counts every N evictions
    _LOG_INTERVAL = 100

    def __init__(
        self,
        store: KeyValueStore,
        max_size: int = 500,
        key: str = QUEUE_KEY,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._store = store
        self._key = key
        self.max_size = max_size
        self._entries: List[Entry] = []
        self.evicted_count = 0
        self._last_logged_evictions = 0
        self._listeners: List[Callable[[int], None]] = []

    def load(self) -> "DurableQueue":
        try:
            raw = self._store.load(self._key)
        except Exception as e:
            logger.error(f"Failed to read persisted queue: {e}")
            return self

        if not raw:
            return self

        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError("persisted queue is not a list")
        except ValueError as e:
            logger.error(f"Discarding unreadable persisted queue: {e}")
            return self

        self._entries = [e for e in entries if isinstance(e, dict) and e.get("event_id")]
        self._evict_overflow()
        logger.info(f"Loaded {len(self._entries)} queued events from storage")
        return self

    def add_listener(self, listener: Callable[[int], None]):
        """Register ``listener(size)`` to be called after every enqueue."""
        self._listeners.append(listener)

    def enqueue(self, envelope: Union[Envelope, Entry]):
        entry = envelope.to_wire() if isinstance(envelope, Envelope) else dict(envelope)
        self._entries.append(entry)
        self._evict_overflow()
        self._persist()

        for listener in list(self._listeners):
            try:
                listener(len(self._entries))
            except Exception as e:
                logger.error(f"Queue listener failed: {e}")

    def peek_batch(self, n: int) -> List[Entry]:
        return list(self._entries[: max(n, 0)])

    def remove_batch(self, ids: Iterable[str]) -> int:
        targets = set(ids)
        if not targets:
            return 0
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.get("event_id") not in targets]
        removed = before - len(self._entries)
        if removed:
            self._persist()
        return removed

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def event_ids(self) -> List[Optional[str]]:
        return [e.get("event_id") for e in self._entries]

    def _evict_overflow(self):
        overflow = len(self._entries) - self.max_size
        if overflow <= 0:
            return
        del self._entries[:overflow]
        self.evicted_count += overflow

        if self.evicted_count - self._last_logged_evictions >= self._LOG_INTERVAL or overflow > 1:
            logger.warning(
                f"Telemetry queue full ({self.max_size}); evicted {self.evicted_count} "
                "oldest events so far"
            )
            self._last_logged_evictions = self.evicted_count

    def _persist(self):
        try:
            self._store.save(self._key, json.dumps(self._entries, separators=(",", ":")))
        except Exception as e:
            logger.error(f"Failed to persist telemetry queue ({len(self._entries)} events): {e}")
