import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List

logger = logging.getLogger(__name__)


class AppState(Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


LifecycleCallback = Callable[[AppState], None]
Unsubscribe = Callable[[], None]


class LifecycleSource(ABC):
    """Host-supplied foreground/background notifications."""

    @abstractmethod
    def subscribe(self, callback: LifecycleCallback) -> Unsubscribe:
        ...


class ManualLifecycle(LifecycleSource):
    """A lifecycle source the host drives by calling ``emit``."""

    def __init__(self):
        self._callbacks: List[LifecycleCallback] = []
        self.state = AppState.FOREGROUND

    def subscribe(self, callback: LifecycleCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, state: AppState):
        self.state = state
        for callback in list(self._callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Lifecycle callback failed on {state.value}: {e}")

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)
