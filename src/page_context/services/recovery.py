"""Recovery orchestrator — bounded retries, one fallback, terminal reporting.

Per operation id the orchestrator walks::

    idle -> attempting(n) -> success
                          -> attempting(n + 1)
                          -> exhausted -> fallback_attempting -> success
                                                              -> fallback_failed

Calls sharing an operation id are serialised, so at most one
:class:`RetryState` exists per id at any time.  States are dropped on
terminal resolution; a periodic sweep removes any left behind by abandoned
operations.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from page_context.domain.entities import RecoveryPhase, RetryState
from page_context.domain.exceptions import (
    NON_RETRYABLE_CODES,
    ErrorCode,
    PageContextError,
    RecoveryStrategy,
    Severity,
)
from page_context.domain.ports.collaborators import TelemetryEvent, TelemetrySink

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Retry budget for one :meth:`RecoveryOrchestrator.with_recovery` call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    timeout: float = 30.0
    jitter_ratio: float = 0.1
    # Least time the fallback gets once the attempts have used up the budget
    fallback_timeout: float = 1.0


@dataclass(slots=True)
class _Gate:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def should_retry(error: PageContextError) -> bool:
    """Whether *error*'s own tags allow another attempt."""
    if error.severity is Severity.CRITICAL:
        return False
    if error.recovery in (RecoveryStrategy.USER_ACTION, RecoveryStrategy.NONE):
        return False
    return error.code not in NON_RETRYABLE_CODES


def more_severe(primary: PageContextError, fallback: PageContextError) -> PageContextError:
    """The higher-severity error; the fallback's wins a tie."""
    return primary if primary.severity.rank > fallback.severity.rank else fallback


class RecoveryOrchestrator:
    """Wraps fallible async operations with retry and fallback.

    Parameters
    ----------
    telemetry:
        Receives one event per terminal outcome.  Emission errors are
        swallowed.
    sleep, clock, jitter:
        Injectable for tests.  *jitter* returns a float in ``[0, 1)``.
    stale_after:
        Age in seconds after which the sweep discards a retry state.
    sweep_interval:
        Minimum seconds between two sweeps.
    """

    def __init__(
        self,
        telemetry: TelemetrySink | None = None,
        *,
        default_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        jitter: Callable[[], float] = random.random,
        stale_after: float = 300.0,
        sweep_interval: float = 60.0,
    ) -> None:
        self._telemetry = telemetry
        self._default = default_config or RetryConfig()
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter
        self._stale_after = stale_after
        self._sweep_interval = sweep_interval

        self._states: dict[str, RetryState] = {}
        self._gates: dict[str, _Gate] = {}
        self._last_sweep = clock()
        self._sweeper: asyncio.Task[None] | None = None

    # ── Public API ──────────────────────────────────────────────────────

    async def with_recovery(
        self,
        operation: Operation[T],
        *,
        operation_id: str,
        retry_config: RetryConfig | None = None,
        fallback_operation: Operation[T] | None = None,
        context: str = "unknown",
    ) -> T:
        """Run *operation*, retrying and falling back as its errors allow.

        Raises the last error when retries are exhausted and no fallback
        exists, or the more severe of the two terminal errors when the
        fallback also fails.  The fallback runs under whatever is left of
        ``timeout``, but never less than ``fallback_timeout``.
        """
        config = retry_config or self._default
        gate = self._gates.setdefault(operation_id, _Gate())
        gate.users += 1
        try:
            async with gate.lock:
                return await self._run(operation, operation_id, config, fallback_operation, context)
        finally:
            gate.users -= 1
            if gate.users == 0 and self._gates.get(operation_id) is gate:
                del self._gates[operation_id]

    def delay_for(self, attempt: int, config: RetryConfig | None = None) -> float:
        """Backoff before attempt ``attempt + 1``, jittered by up to ``jitter_ratio``."""
        config = config or self._default
        delay = config.base_delay * config.backoff_factor ** (attempt - 1)
        delay += delay * config.jitter_ratio * self._jitter()
        return min(delay, config.max_delay)

    def retry_state(self, operation_id: str) -> RetryState | None:
        return self._states.get(operation_id)

    def active_operations(self) -> list[str]:
        return sorted(self._states)

    def sweep(self) -> int:
        """Drop retry states older than ``stale_after``; return how many."""
        now = self._clock()
        self._last_sweep = now
        stale = [
            op_id
            for op_id, state in self._states.items()
            if now - state.updated_at >= self._stale_after
        ]
        for op_id in stale:
            del self._states[op_id]
        if stale:
            logger.info("Swept %d stale retry state(s)", len(stale))
        return len(stale)

    def start_sweeper(self) -> None:
        """Run :meth:`sweep` every ``sweep_interval`` seconds in the background."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    # ── Internals ───────────────────────────────────────────────────────

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def _touch(self, state: RetryState, phase: RecoveryPhase) -> None:
        state.phase = phase
        state.updated_at = self._clock()

    async def _run(
        self,
        operation: Operation[T],
        operation_id: str,
        config: RetryConfig,
        fallback: Operation[T] | None,
        context: str,
    ) -> T:
        self._maybe_sweep()
        started = self._clock()
        state = RetryState(operation_id=operation_id, started_at=started, updated_at=started)
        self._states[operation_id] = state
        try:
            last_error: PageContextError | None = None
            for attempt in range(1, max(config.max_attempts, 1) + 1):
                remaining = config.timeout - (self._clock() - started)
                if remaining <= 0:
                    break
                state.attempt_count = attempt
                self._touch(state, RecoveryPhase.ATTEMPTING)
                try:
                    result = await asyncio.wait_for(operation(), timeout=remaining)
                except asyncio.TimeoutError as exc:
                    last_error = PageContextError(
                        f"{context} timed out after {config.timeout:.1f}s",
                        code=ErrorCode.OPERATION_TIMEOUT,
                    )
                    last_error.__cause__ = exc
                except Exception as exc:
                    last_error = PageContextError.from_unknown(exc)
                else:
                    self._touch(state, RecoveryPhase.SUCCESS)
                    self._report("recovery_success", state, context)
                    return result

                state.last_error = last_error
                logger.debug(
                    "%s attempt %d/%d failed: %s",
                    operation_id,
                    attempt,
                    config.max_attempts,
                    last_error,
                )
                if not should_retry(last_error) or attempt >= config.max_attempts:
                    break
                remaining = config.timeout - (self._clock() - started)
                if remaining <= 0:
                    break
                await self._sleep(min(self.delay_for(attempt, config), remaining))

            if last_error is None:
                last_error = PageContextError(
                    f"{context} had no time left to run", code=ErrorCode.OPERATION_TIMEOUT
                )
                state.last_error = last_error
            self._touch(state, RecoveryPhase.EXHAUSTED)

            if fallback is None:
                self._report("recovery_failed", state, context)
                raise last_error

            self._touch(state, RecoveryPhase.FALLBACK_ATTEMPTING)
            budget = max(config.timeout - (self._clock() - started), config.fallback_timeout)
            try:
                result = await asyncio.wait_for(fallback(), timeout=budget)
            except Exception as exc:
                if isinstance(exc, asyncio.TimeoutError):
                    fallback_error = PageContextError(
                        f"{context} fallback timed out after {budget:.1f}s",
                        code=ErrorCode.OPERATION_TIMEOUT,
                    )
                else:
                    fallback_error = PageContextError.from_unknown(exc)
                state.last_error = fallback_error
                self._touch(state, RecoveryPhase.FALLBACK_FAILED)
                self._report("fallback_failed", state, context)
                raise more_severe(last_error, fallback_error) from exc
            self._touch(state, RecoveryPhase.SUCCESS)
            self._report("fallback_success", state, context)
            logger.info("%s recovered through fallback after %d attempt(s)", operation_id, state.attempt_count)
            return result
        finally:
            if self._states.get(operation_id) is state:
                del self._states[operation_id]

    def _report(self, name: str, state: RetryState, context: str) -> None:
        if self._telemetry is None:
            return
        error = state.last_error
        try:
            self._telemetry.emit(
                TelemetryEvent(
                    name=name,
                    phase="recovery",
                    operation_id=state.operation_id,
                    duration_ms=(self._clock() - state.started_at) * 1000,
                    attempts=state.attempt_count,
                    error_code=error.code.value if isinstance(error, PageContextError) else None,
                    data={"context": context},
                )
            )
        except Exception:
            logger.debug("Telemetry emit failed for %s", state.operation_id, exc_info=True)
