"""Circuit breaker guarding repeated classification failures."""

from __future__ import annotations

import logging
import time
from typing import Callable

from page_context.domain.entities import CircuitBreakerState

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Opens after *threshold* consecutive failures inside a rolling *window*.

    While open, callers should skip real work.  The breaker closes by itself
    once *window* seconds pass without a new failure.
    """

    def __init__(
        self,
        threshold: int = 5,
        window: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self._threshold = threshold
        self._window = window
        self._clock = clock
        self._state = CircuitBreakerState()

    @property
    def state(self) -> CircuitBreakerState:
        """A copy; the live state is only mutated through this breaker."""
        return CircuitBreakerState(
            failure_count=self._state.failure_count,
            last_failure_at=self._state.last_failure_at,
        )

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def window(self) -> float:
        return self._window

    def _expired(self, now: float) -> bool:
        last = self._state.last_failure_at
        return last is not None and now - last >= self._window

    def is_open(self) -> bool:
        now = self._clock()
        if self._expired(now):
            if self._state.failure_count >= self._threshold:
                logger.info("Circuit breaker window elapsed — closing")
            self.reset()
            return False
        return self._state.failure_count >= self._threshold

    def record_failure(self) -> None:
        now = self._clock()
        if self._expired(now):
            self._state.failure_count = 0
        self._state.failure_count += 1
        self._state.last_failure_at = now
        if self._state.failure_count == self._threshold:
            logger.warning(
                "Circuit breaker opened after %d failures within %.0fs",
                self._threshold,
                self._window,
            )

    def record_success(self) -> None:
        if self._state.failure_count:
            self.reset()

    def reset(self) -> None:
        self._state = CircuitBreakerState()
