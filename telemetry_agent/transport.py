import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from .backoff import BackoffSchedule

logger = logging.getLogger(__name__)

RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})

Sleep = Callable[[float], Awaitable[None]]


class OutcomeKind(Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable_failure"
    TERMINAL = "terminal_failure"


@dataclass
class Outcome:
    kind: OutcomeKind
    status: Optional[int] = None
    reason: str = ""
    attempts: int = 1
    received: int = 0
    inserted: int = 0
    duplicates: int = 0
    dropped: int = 0

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


def classify_response(status: int, body: str) -> Outcome:
    if 200 <= status < 300:
        try:
            counts = json.loads(body) if body else {}
        except ValueError:
            counts = {}
        if not isinstance(counts, dict):
            counts = {}
        return Outcome(
            OutcomeKind.SUCCESS,
            status=status,
            received=int(counts.get("received", 0)),
            inserted=int(counts.get("inserted", 0)),
            duplicates=int(counts.get("duplicates", 0)),
            dropped=int(counts.get("dropped", 0)),
        )

    if status >= 500 or status in RETRYABLE_CLIENT_STATUSES:
        return Outcome(OutcomeKind.RETRYABLE, status=status, reason=f"HTTP {status}")

    return Outcome(OutcomeKind.TERMINAL, status=status, reason=f"HTTP {status}: {body[:200]}")


class RetryTransport:
    """
    Delivers one batch to the ingestion endpoint, retrying transient
    failures with exponential backoff.

    Backoff state lives in the ``send`` call itself, so two batches never
    share an attempt counter. The wait between attempts goes through the
    injected ``sleep`` and is the only point where a send can be cancelled.
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: Optional[str] = None,
        schedule: BackoffSchedule = None,
        timeout: float = 10.0,
        user_agent: str = "telemetry-agent",
        sleep: Sleep = asyncio.sleep,
        session: aiohttp.ClientSession = None,
    ):
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.schedule = schedule or BackoffSchedule()
        self.timeout = timeout
        self.user_agent = user_agent
        self._sleep = sleep
        self._session = session

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @asynccontextmanager
    async def _session_scope(self):
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    async def send(self, batch: List[Dict[str, Any]]) -> Outcome:
        payload = json.dumps({"events": batch}, separators=(",", ":"))
        attempt = 0

        async with self._session_scope() as session:
            while True:
                outcome = await self._attempt(session, payload)
                outcome.attempts = attempt + 1

                if outcome.kind is not OutcomeKind.RETRYABLE:
                    return outcome

                if attempt + 1 >= self.schedule.max_attempts:
                    logger.warning(
                        f"Giving up on batch of {len(batch)} after {outcome.attempts} attempts: "
                        f"{outcome.reason}"
                    )
                    return outcome

                delay = self.schedule.delay(attempt)
                logger.info(
                    f"Batch delivery failed ({outcome.reason}); retry {attempt + 1} in {delay:.1f}s"
                )
                await self._sleep(delay)
                attempt += 1

    async def _attempt(self, session: aiohttp.ClientSession, payload: str) -> Outcome:
        try:
            async with session.post(
                self.endpoint_url,
                data=payload,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                body = await resp.text()
                return classify_response(resp.status, body)

        except asyncio.TimeoutError:
            return Outcome(OutcomeKind.RETRYABLE, reason="timeout")
        except aiohttp.ClientError as e:
            return Outcome(OutcomeKind.RETRYABLE, reason=f"network error: {e}")
