"""Bounded exponential-backoff retry."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from mediaferry.errors import RetriesExhaustedError, TransferError
from mediaferry.models import TaskState, UploadTask

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Retryability(str, Enum):
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


def default_classify(error: BaseException) -> Retryability:
    """Retry only failures that are typed as transient."""
    if isinstance(error, TransferError) and error.retryable:
        return Retryability.RETRYABLE
    return Retryability.TERMINAL


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None
    classify: Callable[[BaseException], Retryability] = default_classify

    def delay_for(self, attempt: int) -> float:
        """Backoff to wait after failed attempt number `attempt` (1-based)."""
        delay = self.base_delay * 2 ** (attempt - 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


class RetryController:
    """Runs an attempt function until it succeeds, fails terminally, or runs out of attempts."""

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ):
        self.policy = policy
        self._sleep = sleep
        self._on_retry = on_retry

    async def run(self, attempt_fn: Callable[[], Awaitable[T]], task: UploadTask | None = None) -> T:
        """
        Execute `attempt_fn` under the retry policy.

        Args:
            attempt_fn: Zero-argument coroutine function performing one attempt
            task: Owning task; its attempt counter is bumped before every call

        Returns:
            Whatever the first successful attempt returns

        Raises:
            The original error when it is terminal, or RetriesExhaustedError
            once every attempt failed with a retryable error.
        """
        attempt = 0
        while True:
            attempt += 1
            if task is not None:
                task.attempts += 1
            try:
                return await attempt_fn()
            except Exception as e:
                if self.policy.classify(e) is Retryability.TERMINAL:
                    raise
                if attempt >= self.policy.max_attempts:
                    raise RetriesExhaustedError(e, attempt) from e

                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "Attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt,
                    self.policy.max_attempts,
                    e,
                    delay,
                )
                if self._on_retry is not None:
                    self._on_retry(attempt, e, delay)
                if task is not None:
                    task.state = TaskState.RETRYING
                await self._sleep(delay)
