from .exceptions import (
    IngestionError,
    MalformedRequestError,
    PayloadTooLargeError,
    StoreUnavailableError,
    TooManyEventsError,
    UnauthorizedError,
)
from .processor import BatchProcessor, BatchResult, parse_request
from .store import EventStore, InMemoryEventStore

__all__ = [
    "BatchProcessor",
    "BatchResult",
    "parse_request",
    "EventStore",
    "InMemoryEventStore",
    "IngestionError",
    "MalformedRequestError",
    "PayloadTooLargeError",
    "StoreUnavailableError",
    "TooManyEventsError",
    "UnauthorizedError",
]
