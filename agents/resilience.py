"""
Timeout + exponential backoff retry wrapper for completion calls.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from agents.cancellation import CancellationSignal
from agents.errors import (
    CompletionTimeoutError,
    PipelineError,
    RetryExhaustedError,
    is_retryable,
)

logger = structlog.get_logger()

T = TypeVar("T")

OnRetry = Callable[[int, PipelineError, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry and timeout policy. All durations are in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 30.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after failed attempt number ``attempt`` (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            timeout=settings.completion_timeout_seconds,
        )


async def with_resilience(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: Optional[OnRetry] = None,
    signal: Optional[CancellationSignal] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with a per-attempt timeout and exponential backoff.

    Non-retryable errors (auth, 4xx client errors, caller errors,
    cancellation) propagate immediately. Retryable errors are retried up to
    ``policy.max_retries`` times; after that the last error is raised
    wrapped in RetryExhaustedError.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: RetryPolicy
        on_retry: Called as on_retry(attempt, error, delay) before each backoff
        signal: Run cancellation signal, checked before every attempt and
            raced against the backoff delay
        sleep: Backoff sleeper (injectable for tests)

    Returns:
        The operation's result
    """
    attempt = 0
    while True:
        if signal:
            signal.raise_if_cancelled()
        try:
            try:
                return await asyncio.wait_for(operation(), timeout=policy.timeout)
            except asyncio.TimeoutError:
                raise CompletionTimeoutError(policy.timeout) from None
        except PipelineError as e:
            if not is_retryable(e):
                raise

            if attempt >= policy.max_retries:
                logger.error(
                    "Retries exhausted",
                    attempts=attempt + 1,
                    error_kind=e.kind,
                    error=e.message,
                )
                raise RetryExhaustedError(e, attempts=attempt + 1) from e

            delay = policy.delay_for(attempt)
            logger.warning(
                "Completion attempt failed, retrying",
                attempt=attempt + 1,
                max_attempts=policy.max_retries + 1,
                error_kind=e.kind,
                error=e.message,
                delay_seconds=delay,
            )
            if on_retry:
                on_retry(attempt + 1, e, delay)

            if signal:
                await signal.guard(sleep(delay))
            else:
                await sleep(delay)
            attempt += 1
