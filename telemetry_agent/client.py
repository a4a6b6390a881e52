import asyncio
import logging
from typing import Any, Dict, Optional

from .backoff import BackoffSchedule
from .config import AgentConfig
from .durable_queue import DurableQueue
from .envelope import EnvelopeBuilder
from .exceptions import AlreadyInitializedError, NotInitializedError
from .identity import IdentityState
from .lifecycle import AppState
from .scheduler import BatchScheduler
from .storage import FileKeyValueStore
from .transport import Outcome, RetryTransport

logger = logging.getLogger(__name__)

__version__ = "1.0.0"


class TelemetryClient:
    """
    Wires identity, envelope building, the durable queue, the scheduler and
    the transport together for one process.

    ``track``, ``screen``, ``identify`` and ``sign_out`` never raise into
    the caller; failures are logged and the event is skipped.
    """

    def __init__(
        self,
        config: AgentConfig,
        storage=None,
        lifecycle=None,
        navigation_provider=None,
        on_terminal_failure=None,
        transport=None,
        clock=None,
        sleep=asyncio.sleep,
    ):
        self.config = config
        self.storage = storage if storage is not None else FileKeyValueStore(config.storage_dir)

        self.identity = IdentityState(self.storage, session_timeout=config.session_timeout).load()
        self.queue = DurableQueue(self.storage, max_size=config.max_queue_size).load()
        self.builder = EnvelopeBuilder(
            config, self.identity, navigation_provider=navigation_provider, clock=clock
        )
        self.transport = transport or RetryTransport(
            config.endpoint_url,
            api_key=config.api_key,
            schedule=BackoffSchedule(
                base=config.backoff_base,
                factor=config.backoff_factor,
                max_delay=config.backoff_max_delay,
                max_attempts=config.max_attempts,
                jitter=config.backoff_jitter,
            ),
            timeout=config.request_timeout,
            user_agent=f"telemetry-agent/{__version__} ({config.platform})",
            sleep=sleep,
        )
        self.scheduler = BatchScheduler(
            self.queue,
            self.transport,
            batch_size=config.batch_size,
            flush_interval=config.flush_interval,
            lifecycle=lifecycle,
            on_lifecycle=self._on_lifecycle,
            on_terminal_failure=on_terminal_failure,
            sleep=sleep,
        )
        self._started = False

    def start(self):
        if not self._started:
            self.scheduler.start()
            self._started = True

    def track(
        self,
        event_name: str,
        properties: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        try:
            return self._enqueue(self.builder.build(event_name, properties, context))
        except Exception as e:
            logger.error(f"Could not record event '{event_name}': {e}")
            return None

    def screen(
        self,
        screen: str,
        properties: Optional[Dict[str, Any]] = None,
        navigation: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        try:
            return self._enqueue(self.builder.build_screen(screen, properties, navigation))
        except Exception as e:
            logger.error(f"Could not record screen event '{screen}': {e}")
            return None

    def identify(self, user_id: str, traits: Optional[Dict[str, Any]] = None) -> Optional[str]:
        self.identity.sign_in(user_id)
        return self.track("identify", traits)

    def sign_out(self):
        self.track("sign_out")
        self.identity.sign_out()

    async def flush(self) -> Optional[Outcome]:
        return await self.scheduler.flush("manual")

    async def shutdown(self, flush: bool = True, timeout: float = 5.0):
        if flush:
            try:
                await asyncio.wait_for(self.scheduler.drain(), timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Final flush did not finish within {timeout}s; "
                    f"{self.queue.size()} events stay queued"
                )
        await self.scheduler.stop()
        self._started = False

    def _enqueue(self, envelope) -> str:
        self.identity.touch()
        self.queue.enqueue(envelope)
        return envelope.event_id

    def _on_lifecycle(self, state: AppState):
        if state is AppState.FOREGROUND:
            self.identity.on_foreground()
        else:
            self.identity.on_background()


_client: Optional[TelemetryClient] = None


def init(config: AgentConfig, **kwargs) -> TelemetryClient:
    global _client
    if _client is not None:
        raise AlreadyInitializedError()

    _client = TelemetryClient(config, **kwargs)
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("init() called outside an event loop; call get_client().start() once one runs")
    else:
        _client.start()
    return _client


def get_client() -> TelemetryClient:
    if _client is None:
        raise NotInitializedError()
    return _client


async def shutdown(flush: bool = True, timeout: float = 5.0):
    global _client
    if _client is None:
        return
    client, _client = _client, None
    await client.shutdown(flush=flush, timeout=timeout)


def track(event_name: str, properties=None, context=None) -> Optional[str]:
    if _client is None:
        logger.warning(f"Dropping '{event_name}': telemetry agent not initialized")
        return None
    return _client.track(event_name, properties, context)


def screen(name: str, properties=None, navigation=None) -> Optional[str]:
    if _client is None:
        logger.warning(f"Dropping screen '{name}': telemetry agent not initialized")
        return None
    return _client.screen(name, properties, navigation)


def identify(user_id: str, traits=None) -> Optional[str]:
    if _client is None:
        logger.warning("Ignoring identify: telemetry agent not initialized")
        return None
    return _client.identify(user_id, traits)


def sign_out():
    if _client is None:
        return
    _client.sign_out()
