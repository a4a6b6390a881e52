import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from telemetry_schema import (
    MAX_ENVELOPE_BYTES,
    MAX_PROPERTIES_BYTES,
    SCHEMA_VERSION,
    Envelope,
    EventContext,
    encoded_size,
    scrub,
)

from .config import AgentConfig
from .identity import IdentityState, new_id

logger = logging.getLogger(__name__)

SCREEN_VIEW_EVENT = "screen_view"
NAVIGATION_KEYS = ("route", "referrer")

NavigationProvider = Callable[[], Optional[Dict[str, Any]]]


class EnvelopeBuilder:
    def __init__(
        self,
        config: AgentConfig,
        identity: IdentityState,
        navigation_provider: NavigationProvider = None,
        clock: Callable[[], datetime] = None,
    ):
        self._config = config
        self._identity = identity
        self._navigation_provider = navigation_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build(
        self,
        event_name: str,
        properties: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Envelope:
        clean_props, removed = scrub(dict(properties or {}))
        if removed:
            logger.debug(f"Stripped PII keys from '{event_name}': {removed}")

        envelope = Envelope(
            schema_version=SCHEMA_VERSION,
            event_id=new_id(),
            event_name=event_name,
            client_ts=self._clock(),
            anonymous_id=self._identity.anonymous_id,
            user_id=self._identity.user_id,
            session_id=self._identity.session_id,
            platform=self._config.platform,
            app_name=self._config.app_name,
            app_version=self._config.app_version,
            build=self._config.build,
            environment=self._config.environment,
            context=self._context(context),
            properties=clean_props,
        )
        self._check_limits(envelope)
        return envelope

    def build_screen(
        self,
        screen: str,
        properties: Optional[Dict[str, Any]] = None,
        navigation: Optional[Dict[str, Any]] = None,
    ) -> Envelope:
        context: Dict[str, Any] = {}
        if self._navigation_provider is not None:
            try:
                auto = self._navigation_provider() or {}
            except Exception as e:
                logger.warning(f"Navigation provider failed: {e}")
                auto = {}
            context.update({k: auto[k] for k in NAVIGATION_KEYS if auto.get(k) is not None})

        # explicit navigation always wins over auto-built values
        if navigation:
            context.update({k: navigation[k] for k in NAVIGATION_KEYS if navigation.get(k) is not None})

        context["screen"] = screen
        return self.build(SCREEN_VIEW_EVENT, properties, context)

    def _context(self, overrides: Optional[Dict[str, Any]]) -> EventContext:
        values = {
            "locale": self._config.locale,
            "timezone": self._config.timezone,
            "device_model": self._config.device_model,
            "os_version": self._config.os_version,
        }
        if overrides:
            clean, _ = scrub(overrides)
            values.update(clean)
        return EventContext.model_validate({k: v for k, v in values.items() if v is not None})

    def _check_limits(self, envelope: Envelope):
        # to_wire() raises here, not at enqueue, for values JSON cannot carry
        wire = envelope.to_wire()

        # advisory only; the ingestion service is authoritative and drops these
        if encoded_size(envelope.properties) > MAX_PROPERTIES_BYTES:
            logger.warning(
                f"Event '{envelope.event_name}' properties exceed {MAX_PROPERTIES_BYTES} bytes "
                "and will be dropped by the server"
            )
        elif encoded_size(wire) > MAX_ENVELOPE_BYTES:
            logger.warning(
                f"Event '{envelope.event_name}' exceeds {MAX_ENVELOPE_BYTES} bytes "
                "and will be dropped by the server"
            )
