import logging
from functools import lru_cache

from .config import Settings
from .store import EventStore, InMemoryEventStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_store() -> EventStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        logger.warning("Using in-memory event store; records will not survive a restart")
        return InMemoryEventStore()

    from .aws_utils import DynamoEventStore

    logger.info(f"Using DynamoDB event store table={settings.events_table}")
    return DynamoEventStore.from_settings(settings)
