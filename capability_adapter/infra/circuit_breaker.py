# capability_adapter/infra/circuit_breaker.py
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from capability_adapter.errors import CircuitOpenError

log = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """
    Consecutive-failure breaker shared by every call through one transport.

    CLOSED -> OPEN after ``threshold`` consecutive failures. While open, calls
    fail fast with CircuitOpenError. Once ``cool_down`` seconds have passed
    since the last failure the breaker is closed again and the next call is a
    normal trial; if it fails the breaker re-opens. A success resets the count.
    Cancellation is neither a success nor a failure.
    """

    def __init__(
        self,
        name: str,
        *,
        threshold: int = 5,
        cool_down: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.name = name
        self.threshold = threshold
        self.cool_down = cool_down
        self._clock = clock
        self._failures = 0
        self._last_failure_at: Optional[float] = None

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_failure_at(self) -> Optional[float]:
        return self._last_failure_at

    @property
    def state(self) -> CircuitState:
        return CircuitState.OPEN if self._remaining_cool_down() > 0 else CircuitState.CLOSED

    def _remaining_cool_down(self) -> float:
        if self._failures < self.threshold or self._last_failure_at is None:
            return 0.0
        return self.cool_down - (self._clock() - self._last_failure_at)

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        remaining = self._remaining_cool_down()
        if remaining > 0:
            raise CircuitOpenError(self.name, remaining)

        try:
            result = await fn()
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_success()
        return result

    def _record_failure(self, exc: BaseException) -> None:
        self._failures += 1
        self._last_failure_at = self._clock()
        if self._failures == self.threshold:
            log.warning(
                "circuit %s opened after %d consecutive failures (last: %s)",
                self.name, self._failures, exc,
            )
        elif self._failures > self.threshold:
            log.warning("circuit %s trial call failed, re-opened: %s", self.name, exc)

    def _record_success(self) -> None:
        if self._failures >= self.threshold:
            log.info("circuit %s closed after successful trial call", self.name)
        self._failures = 0

    def reset(self) -> None:
        self._failures = 0
        self._last_failure_at = None

    def snapshot(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self._failures,
            "threshold": self.threshold,
            "cool_down_s": self.cool_down,
        }
