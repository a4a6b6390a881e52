from .cloudwatch_ import emit_metrics
from .dynamodb_ import DynamoEventStore
from .logging_ import configure_logging
from .secrets_ import get_api_key

__all__ = [
    "emit_metrics",
    "DynamoEventStore",
    "configure_logging",
    "get_api_key",
]
