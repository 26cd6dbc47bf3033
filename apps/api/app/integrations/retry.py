"""Named retry policies for bounded polling and upstream retries."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


class RetryExhaustedError(Exception):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"gave up after {attempts} attempts")
        self.attempts = attempts


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    initial_delay_s: float = 0.0
    multiplier: float = 2.0
    max_delay_s: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("initial_delay_s must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    @classmethod
    def fixed(cls, max_attempts: int, delay_s: float) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, initial_delay_s=delay_s, multiplier=1.0)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given 1-based attempt failed."""
        delay = self.initial_delay_s * (self.multiplier ** (attempt - 1))
        if self.max_delay_s is not None:
            delay = min(delay, self.max_delay_s)
        return delay

    def poll(
        self,
        check: Callable[[], T | None],
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """Call ``check`` until it returns a value other than None.

        Raises RetryExhaustedError once ``max_attempts`` checks came back empty.
        Exceptions raised by the check propagate immediately.
        """
        for attempt in range(1, self.max_attempts + 1):
            result = check()
            if result is not None:
                return result
            if attempt < self.max_attempts:
                sleep(self.delay_for(attempt))
        raise RetryExhaustedError(self.max_attempts)
