import random
from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffSchedule:
    """Exponential retry delays: ``base * factor ** attempt``, capped at ``max_delay``."""

    base: float = 1.0
    factor: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 5
    jitter: float = 0.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        capped = min(self.base * (self.factor ** attempt), self.max_delay)
        if self.jitter:
            return capped * (1 - self.jitter + random.random() * 2 * self.jitter)
        return capped

    def delays(self):
        return [self.delay(attempt) for attempt in range(self.max_attempts - 1)]
