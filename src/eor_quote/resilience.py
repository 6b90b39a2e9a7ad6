"""
Time budgets and retry policy for external calls.

Every generative-model call runs inside a stage budget: each attempt gets
min(per-call timeout, remaining budget) so a stage never overruns, and only
errors flagged ``retriable`` (timeouts, rate limits, 5xx) are retried with
exponential backoff. Everything else propagates on the first failure.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.stop import stop_base

from .errors import ModelTimeoutError, StageBudgetExceededError
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# Smallest timeout worth handing to an attempt, and headroom kept for parsing.
MIN_ATTEMPT_TIMEOUT_SECONDS = 0.1
BUDGET_SAFETY_SECONDS = 0.05


class StageBudget:
    """Deadline shared by every external call made within one pipeline stage."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._deadline = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._deadline - self._clock())

    @property
    def exhausted(self) -> bool:
        return self.remaining() <= MIN_ATTEMPT_TIMEOUT_SECONDS

    def attempt_timeout(self, per_call_timeout: float) -> float:
        """Timeout for the next attempt, shrunk to fit what is left of the budget."""
        usable = self.remaining() - BUDGET_SAFETY_SECONDS
        return max(MIN_ATTEMPT_TIMEOUT_SECONDS, min(per_call_timeout, usable))


class stop_when_budget_exhausted(stop_base):
    """Stop retrying once the stage budget cannot fit another attempt."""

    def __init__(self, budget: StageBudget):
        self.budget = budget

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.budget.exhausted


def _is_retriable(exc: BaseException) -> bool:
    return bool(getattr(exc, 'retriable', False))


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        'model_call.retrying',
        attempt=retry_state.attempt_number,
        error_type=type(exc).__name__ if exc else None,
        error=str(exc) if exc else None,
    )


async def call_with_budget(
    fn: Callable[[float], Awaitable[T]],
    budget: StageBudget,
    per_call_timeout: float,
    max_attempts: int = 3,
    min_wait: float = 0.25,
    max_wait: float = 1.0,
    context: dict[str, Any] | None = None,
) -> T:
    """
    Run an async call under a per-call timeout and a shared stage budget.

    Args:
        fn: Coroutine factory receiving the timeout granted to this attempt
        budget: Stage budget shared across calls of the stage
        per_call_timeout: Upper bound for a single attempt in seconds
        max_attempts: Maximum attempts including the first
        min_wait: Initial backoff delay in seconds (doubles per retry)
        max_wait: Backoff delay cap in seconds
        context: Error context (provider, stage)

    Returns:
        Whatever ``fn`` returns

    Raises:
        StageBudgetExceededError: Budget exhausted before an attempt could start
        ModelTimeoutError: Last attempt timed out
        Any non-retriable error raised by ``fn``, unchanged
    """
    ctx = dict(context or {})

    async def _attempt() -> T:
        if budget.exhausted:
            raise StageBudgetExceededError(
                'Stage time budget exhausted',
                context={**ctx, 'budget_seconds': budget.seconds},
            )
        timeout = budget.attempt_timeout(per_call_timeout)
        try:
            return await asyncio.wait_for(fn(timeout), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ModelTimeoutError(
                f'Model call exceeded {timeout:.2f}s',
                context={**ctx, 'timeout_seconds': round(timeout, 2)},
            ) from exc

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts) | stop_when_budget_exhausted(budget),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception(_is_retriable),
        before_sleep=_log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await _attempt()
    # AsyncRetrying with reraise=True always returns or raises inside the loop
    raise StageBudgetExceededError('Stage time budget exhausted', context=ctx)
