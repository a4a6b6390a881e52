from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .limits import MAX_NAME_LENGTH, SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def format_ts(value: datetime) -> str:
    """Render a datetime as a millisecond-precision UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported timestamp type: {type(value).__name__}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class EventContext(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    screen: Optional[str] = None
    route: Optional[str] = None
    referrer: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    device_model: Optional[str] = None
    os_version: Optional[str] = None
    network_type: Optional[str] = None


class Envelope(BaseModel):
    """
    One normalized telemetry record as it travels from the client to the
    event store. ``server_ts``, ``client_ip_hash`` and ``client_type`` are
    only ever populated by the ingestion service.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", use_enum_values=True)

    schema_version: int = SCHEMA_VERSION
    event_id: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    event_name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    client_ts: str
    server_ts: Optional[str] = None
    anonymous_id: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    user_id: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    session_id: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    platform: Platform
    app_name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    app_version: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    build: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    environment: Environment
    context: EventContext = Field(default_factory=EventContext)
    properties: Dict[str, Any] = Field(default_factory=dict)
    client_ip_hash: Optional[str] = None
    client_type: Optional[str] = None

    @field_validator("schema_version")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if value not in SUPPORTED_SCHEMA_VERSIONS:
            raise ValueError(f"unsupported schema_version {value}")
        return value

    @field_validator("client_ts", "server_ts", mode="before")
    @classmethod
    def _normalize_ts(cls, value: Any) -> Any:
        if value is None:
            return None
        return format_ts(parse_ts(value))

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
