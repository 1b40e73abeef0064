"""
Retry helper with exponential backoff, a pluggable error classifier and an
overall deadline.

Sleep and clock are injectable so retry schedules can be unit tested without
real waiting.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from dailydrop.observability.telemetry import counter, log_event

T = TypeVar("T")


class RetryDisposition(str, Enum):
    """Whether a failed attempt may be tried again"""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


class RetryExhaustedError(RuntimeError):
    """Every allowed attempt failed with a retryable error."""

    def __init__(self, stage: str, attempts: int, last_error: Exception):
        super().__init__(f"{stage} failed after {attempts} attempts: {last_error}")
        self.stage = stage
        self.attempts = attempts
        self.last_error = last_error


class RetryDeadlineExceeded(RuntimeError):
    """The overall deadline ran out before an attempt succeeded."""

    def __init__(self, stage: str, attempts: int, elapsed: float):
        super().__init__(f"{stage} exceeded its deadline after {attempts} attempts ({elapsed:.1f}s)")
        self.stage = stage
        self.attempts = attempts
        self.elapsed = elapsed


def retry_everything(_exc: Exception) -> RetryDisposition:
    return RetryDisposition.RETRYABLE


@dataclass
class RetryPolicy:
    stage: str
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    jitter: float = 0.0
    deadline_seconds: float | None = None
    classify: Callable[[Exception], RetryDisposition] = retry_everything
    sleep_fn: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic
    attempts: int = field(default=0, init=False)
    _started: float | None = field(default=None, init=False, repr=False)

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call func until it succeeds, fails non-retryably, runs out of attempts
        or runs past the deadline.

        Returns:
            Whatever func returns on the first successful attempt

        Raises:
            The original exception when classify() marks it NON_RETRYABLE
            RetryExhaustedError: After max_attempts retryable failures
            RetryDeadlineExceeded: When the next attempt or backoff would pass the deadline

        Side Effects:
            - Sets self.attempts to the number of calls made
            - Sleeps between attempts via sleep_fn
            - Emits retry telemetry
        """
        self.attempts = 0
        started = self._started = self.clock()

        while True:
            elapsed = self.clock() - started
            if self.deadline_seconds is not None and elapsed >= self.deadline_seconds:
                log_event("retry.deadline_exceeded", stage=self.stage, attempts=self.attempts)
                raise RetryDeadlineExceeded(self.stage, self.attempts, elapsed)

            self.attempts += 1
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                disposition = self.classify(exc)
                log_event(
                    "stage_error",
                    stage=self.stage,
                    error_type=type(exc).__name__,
                    disposition=disposition.value,
                    attempt=self.attempts,
                )
                if disposition is RetryDisposition.NON_RETRYABLE:
                    raise

                elapsed = self.clock() - started
                if self.deadline_seconds is not None and elapsed >= self.deadline_seconds:
                    log_event("retry.deadline_exceeded", stage=self.stage, attempts=self.attempts)
                    raise RetryDeadlineExceeded(self.stage, self.attempts, elapsed) from exc

                if self.attempts >= self.max_attempts:
                    counter(f"{self.stage}.retry_exhausted")
                    raise RetryExhaustedError(self.stage, self.attempts, exc) from exc

                delay = self._delay_for(self.attempts)
                if self.deadline_seconds is not None and elapsed + delay > self.deadline_seconds:
                    log_event("retry.deadline_exceeded", stage=self.stage, attempts=self.attempts)
                    raise RetryDeadlineExceeded(self.stage, self.attempts, elapsed) from exc

                self._backoff(delay)

    def remaining_seconds(self) -> float | None:
        """Time left before the deadline of the running execute(), or None when unbounded."""
        if self.deadline_seconds is None or self._started is None:
            return None
        return max(self.deadline_seconds - (self.clock() - self._started), 0.0)

    def _delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def _backoff(self, delay: float) -> None:
        counter(f"{self.stage}.retry")
        log_event("retry_scheduled", stage=self.stage, attempt=self.attempts, delay=round(delay, 3))
        self.sleep_fn(delay)
