"""Deadline-aware retry driver.

Every attempt receives what is left of one wall-clock budget that starts with
the first attempt. The budget is never reset between attempts, so retries eat
into the same allowance as the work they retry.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from ..errors import FetchTimeoutError, RetryExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class Budget:
    """Remaining-time allowance measured against a monotonic clock."""

    def __init__(self, total_ms: float, clock: Clock = time.monotonic):
        self.total_ms = total_ms
        self._clock = clock
        self._started = clock()

    @property
    def elapsed_ms(self) -> float:
        return round((self._clock() - self._started) * 1000, 3)

    @property
    def remaining_ms(self) -> float:
        return self.total_ms - self.elapsed_ms

    @property
    def expired(self) -> bool:
        return self.remaining_ms <= 0


@dataclass
class RetryState:
    """Bookkeeping for one retry loop."""

    attempt: int = 0
    last_error: Exception | None = None
    remaining_ms: float = 0.0


async def retry(
    operation: Callable[[float], Awaitable[T]],
    *,
    max_retry: int,
    retry_interval_ms: float,
    timeout_ms: float,
    on_failure: Callable[[Exception], None] | None = None,
    name: str | None = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation(remaining_ms)`` until it succeeds or attempts run out.

    Args:
        operation: Coroutine function taking the remaining budget in ms.
        max_retry: Retries after the first attempt; 0 means a single attempt.
        retry_interval_ms: Pause between attempts. Counts against the budget.
        timeout_ms: Total budget shared by all attempts.
        on_failure: Called synchronously with each error that will be retried,
            before the pause. May adjust state the next attempt reads.
        name: Label used in logs and error messages.

    Raises:
        RetryExhaustedError: The last allowed attempt failed.
        FetchTimeoutError: The budget ran out before another attempt could start.
    """
    if max_retry < 0:
        raise ValueError("max_retry must not be negative")
    if retry_interval_ms < 0:
        raise ValueError("retry_interval_ms must not be negative")
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be greater than 0")

    name = name or getattr(operation, "__name__", None) or "anonymous operation"
    budget = Budget(timeout_ms, clock)
    state = RetryState(remaining_ms=timeout_ms)

    while True:
        state.remaining_ms = budget.remaining_ms
        if state.remaining_ms <= 0:
            logger.warning("retry_budget_exhausted", operation=name, attempts=state.attempt)
            raise FetchTimeoutError(
                f'"{name}" ran out of time after {state.attempt} attempt(s)'
            ) from state.last_error

        try:
            return await operation(state.remaining_ms)
        except Exception as error:
            state.last_error = error
            attempts = state.attempt + 1
            logger.warning(
                "attempt_failed",
                operation=name,
                attempt=attempts,
                error_type=type(error).__name__,
                error=str(error),
                remaining_ms=round(budget.remaining_ms),
            )
            if state.attempt >= max_retry:
                raise RetryExhaustedError(name, attempts, budget.elapsed_ms, error) from error

        if on_failure is not None:
            on_failure(state.last_error)

        await sleep(retry_interval_ms / 1000)
        state.attempt += 1
        logger.info("retrying", operation=name, attempt=state.attempt + 1)
