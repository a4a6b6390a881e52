import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from .durable_queue import DurableQueue
from .lifecycle import AppState, LifecycleSource
from .transport import Outcome, OutcomeKind, RetryTransport

logger = logging.getLogger(__name__)

TerminalFailureHook = Callable[[List[Dict[str, Any]], Outcome], None]


class SchedulerState(Enum):
    IDLE = "idle"
    FLUSHING = "flushing"


class BatchScheduler:
    """
    Decides when a batch leaves the durable queue.

    Flushes are started by a periodic timer, by lifecycle transitions and by
    the queue reaching ``batch_size``. Only one flush runs at a time; a
    trigger that arrives while a flush is in progress is dropped and the
    next trigger picks up whatever is left.
    """

    def __init__(
        self,
        queue: DurableQueue,
        transport: RetryTransport,
        batch_size: int = 50,
        flush_interval: float = 30.0,
        lifecycle: LifecycleSource = None,
        on_lifecycle: Callable[[AppState], None] = None,
        on_terminal_failure: TerminalFailureHook = None,
        sleep=asyncio.sleep,
    ):
        self._queue = queue
        self._transport = transport
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self._lifecycle = lifecycle
        self._on_lifecycle = on_lifecycle
        self._on_terminal_failure = on_terminal_failure
        self._sleep = sleep

        self.state = SchedulerState.IDLE
        self.coalesced_triggers = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._flush_tasks: Set[asyncio.Task] = set()
        self._pending_flush: Optional[asyncio.Task] = None
        self._unsubscribe = None

        queue.add_listener(self._on_enqueue)

    @property
    def is_flushing(self) -> bool:
        return self.state is SchedulerState.FLUSHING

    def start(self):
        if self._timer_task is None:
            self._timer_task = asyncio.get_running_loop().create_task(self._run_timer())
        if self._lifecycle is not None and self._unsubscribe is None:
            self._unsubscribe = self._lifecycle.subscribe(self._handle_lifecycle)
        logger.info(
            f"Batch scheduler started interval={self.flush_interval}s batch_size={self.batch_size}"
        )

    async def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = list(self._flush_tasks)
        if self._timer_task is not None:
            tasks.append(self._timer_task)
            self._timer_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Batch scheduler stopped with {self._queue.size()} events queued")

    def trigger(self, reason: str) -> Optional[asyncio.Task]:
        """Schedule a flush on the running loop unless one is already in progress or scheduled."""
        if self.is_flushing or (self._pending_flush is not None and not self._pending_flush.done()):
            self.coalesced_triggers += 1
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; '{reason}' flush deferred to next trigger")
            return None

        task = loop.create_task(self.flush(reason))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)
        self._pending_flush = task
        return task

    async def drain(self):
        """
        Let any running flush finish, then keep sending batches until the
        queue is empty or a send comes back retryable.
        """
        while True:
            running = [task for task in self._flush_tasks if not task.done()]
            if running:
                await asyncio.gather(*running, return_exceptions=True)
                continue
            if not self._queue.size():
                return

            outcome = await self.flush("drain")
            if outcome is None or outcome.kind is OutcomeKind.RETRYABLE:
                return

    async def flush(self, reason: str = "manual") -> Optional[Outcome]:
        if self.is_flushing:
            self.coalesced_triggers += 1
            logger.debug(f"Flush already in progress; '{reason}' trigger coalesced")
            return None

        self.state = SchedulerState.FLUSHING
        try:
            batch = self._queue.peek_batch(self.batch_size)
            if not batch:
                return None

            logger.debug(f"Flushing {len(batch)} events ({reason})")
            try:
                outcome = await self._transport.send(batch)
            except Exception as e:
                logger.error(f"Unexpected transport error; batch stays queued: {e}")
                return None

            self._settle(batch, outcome)
            return outcome
        finally:
            self.state = SchedulerState.IDLE

    def _settle(self, batch: List[Dict[str, Any]], outcome: Outcome):
        ids = [entry.get("event_id") for entry in batch]

        if outcome.kind is OutcomeKind.SUCCESS:
            removed = self._queue.remove_batch(ids)
            logger.info(
                f"Delivered {removed} events inserted={outcome.inserted} "
                f"duplicates={outcome.duplicates} dropped={outcome.dropped}"
            )

        elif outcome.kind is OutcomeKind.TERMINAL:
            self._queue.remove_batch(ids)
            logger.error(f"Dropping batch of {len(batch)} events: {outcome.reason}")
            if self._on_terminal_failure is not None:
                try:
                    self._on_terminal_failure(batch, outcome)
                except Exception as e:
                    logger.error(f"Terminal failure hook raised: {e}")

        else:
            logger.warning(
                f"Batch of {len(batch)} events left queued after {outcome.attempts} attempts: "
                f"{outcome.reason}"
            )

    def _on_enqueue(self, size: int):
        if size >= self.batch_size:
            self.trigger("threshold")

    def _handle_lifecycle(self, state: AppState):
        if self._on_lifecycle is not None:
            self._on_lifecycle(state)
        self.trigger(state.value)

    async def _run_timer(self):
        while True:
            await self._sleep(self.flush_interval)
            task = self.trigger("timer")
            if task is not None:
                await task
