import os
from dataclasses import dataclass
from typing import Optional

from telemetry_schema import Environment, Platform


@dataclass
class AgentConfig:
    endpoint_url: str
    app_name: str
    app_version: str
    build: str
    platform: str = Platform.IOS.value
    environment: str = Environment.PRODUCTION.value
    api_key: Optional[str] = None
    storage_dir: str = ".telemetry"

    max_queue_size: int = 500
    batch_size: int = 50
    flush_interval: float = 30.0
    request_timeout: float = 10.0

    backoff_base: float = 1.0
    backoff_factor: float = 2.0
    backoff_max_delay: float = 30.0
    max_attempts: int = 5
    backoff_jitter: float = 0.0

    session_timeout: float = 30 * 60

    device_model: Optional[str] = None
    os_version: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None

    def __post_init__(self):
        Platform(self.platform)
        Environment(self.environment)
        if self.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be >= 1, got {self.max_queue_size}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_env(cls) -> "AgentConfig":
        env = os.environ

        def _float(name, default):
            return float(env[name]) if env.get(name) else default

        def _int(name, default):
            return int(env[name]) if env.get(name) else default

        return cls(
            endpoint_url=env["TELEMETRY_ENDPOINT"],
            api_key=env.get("TELEMETRY_API_KEY"),
            app_name=env.get("TELEMETRY_APP_NAME", "telemetry-agent"),
            app_version=env.get("TELEMETRY_APP_VERSION", "0.0.0"),
            build=env.get("TELEMETRY_BUILD", "dev"),
            platform=env.get("TELEMETRY_PLATFORM", Platform.IOS.value),
            environment=env.get("TELEMETRY_ENVIRONMENT", Environment.PRODUCTION.value),
            storage_dir=env.get("TELEMETRY_STORAGE_DIR", ".telemetry"),
            max_queue_size=_int("TELEMETRY_MAX_QUEUE_SIZE", 500),
            batch_size=_int("TELEMETRY_BATCH_SIZE", 50),
            flush_interval=_float("TELEMETRY_FLUSH_INTERVAL", 30.0),
            request_timeout=_float("TELEMETRY_REQUEST_TIMEOUT", 10.0),
            backoff_base=_float("TELEMETRY_BACKOFF_BASE", 1.0),
            backoff_factor=_float("TELEMETRY_BACKOFF_FACTOR", 2.0),
            backoff_max_delay=_float("TELEMETRY_BACKOFF_MAX_DELAY", 30.0),
            max_attempts=_int("TELEMETRY_MAX_ATTEMPTS", 5),
            backoff_jitter=_float("TELEMETRY_BACKOFF_JITTER", 0.0),
            session_timeout=_float("TELEMETRY_SESSION_TIMEOUT", 30 * 60),
            device_model=env.get("TELEMETRY_DEVICE_MODEL"),
            os_version=env.get("TELEMETRY_OS_VERSION"),
            locale=env.get("TELEMETRY_LOCALE"),
            timezone=env.get("TELEMETRY_TIMEZONE"),
        )
