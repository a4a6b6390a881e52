from .backoff import BackoffSchedule
from .client import (
    TelemetryClient,
    get_client,
    identify,
    init,
    screen,
    shutdown,
    sign_out,
    track,
)
from .config import AgentConfig
from .durable_queue import DurableQueue
from .envelope import EnvelopeBuilder
from .exceptions import AgentError, AlreadyInitializedError, NotInitializedError
from .identity import IdentityState
from .lifecycle import AppState, LifecycleSource, ManualLifecycle
from .scheduler import BatchScheduler, SchedulerState
from .storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .transport import Outcome, OutcomeKind, RetryTransport

__all__ = [
    "AgentConfig",
    "AgentError",
    "AlreadyInitializedError",
    "AppState",
    "BackoffSchedule",
    "BatchScheduler",
    "DurableQueue",
    "EnvelopeBuilder",
    "FileKeyValueStore",
    "IdentityState",
    "KeyValueStore",
    "LifecycleSource",
    "ManualLifecycle",
    "MemoryKeyValueStore",
    "NotInitializedError",
    "Outcome",
    "OutcomeKind",
    "RetryTransport",
    "SchedulerState",
    "TelemetryClient",
    "get_client",
    "identify",
    "init",
    "screen",
    "shutdown",
    "sign_out",
    "track",
]
