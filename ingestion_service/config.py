import os
from dataclasses import dataclass
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    events_table: str = "telemetry-events"
    store_backend: str = "dynamodb"
    aws_region: Optional[str] = None
    dynamodb_endpoint_url: Optional[str] = None
    api_key: Optional[str] = None
    api_key_secret_arn: Optional[str] = None
    ip_hash_salt: str = ""
    store_connect_timeout: float = 2.0
    store_read_timeout: float = 5.0
    store_max_attempts: int = 2

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_key or self.api_key_secret_arn)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            events_table=os.environ.get("EVENTS_TABLE", "telemetry-events"),
            store_backend=os.environ.get("DYNAMODB_STORE", "dynamodb").lower(),
            aws_region=os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION"),
            dynamodb_endpoint_url=os.environ.get("DYNAMODB_ENDPOINT_URL") or None,
            api_key=os.environ.get("INGESTION_API_KEY") or None,
            api_key_secret_arn=os.environ.get("API_KEY_SECRET_ARN") or None,
            ip_hash_salt=os.environ.get("IP_HASH_SALT", ""),
            store_connect_timeout=_env_float("STORE_CONNECT_TIMEOUT", 2.0),
            store_read_timeout=_env_float("STORE_READ_TIMEOUT", 5.0),
            store_max_attempts=_env_int("STORE_MAX_ATTEMPTS", 2),
        )
