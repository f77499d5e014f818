"""Per-task state machine: validate, pick a strategy, retry, fall back."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial

from mediaferry.config import TransferConfig
from mediaferry.errors import PolicyError, TaskTimeoutError, ValidationError
from mediaferry.models import StrategyKind, TaskState, UploadResult, UploadTask
from mediaferry.pipeline.progress import ProgressAggregator
from mediaferry.pipeline.retry import RetryController, RetryPolicy
from mediaferry.pipeline.strategies import (
    ChunkedTransferStrategy,
    DirectTransferStrategy,
    ProxyTransferStrategy,
    StorageGateway,
    TransferStrategy,
)
from mediaferry.pipeline.validation import ensure_valid
from mediaferry.transfer_api import TransferApi

logger = logging.getLogger(__name__)

# where a task goes when its strategy raises PolicyError
FALLBACK_CHAIN: dict[StrategyKind, StrategyKind | None] = {
    StrategyKind.CHUNKED: StrategyKind.DIRECT,
    StrategyKind.DIRECT: StrategyKind.PROXY,
    StrategyKind.PROXY: None,
}


class UploadOrchestrator:
    """
    Drives one task from pending to succeeded or failed.

    States: pending -> preparing -> transferring(strategy) -> finalizing ->
    succeeded, with retrying -> transferring loops and failed as the other
    terminal state. Strategy fallback happens inside an attempt and does not
    consume one; same-strategy retries go through the RetryController.
    """

    def __init__(
        self,
        api: TransferApi,
        config: TransferConfig,
        storage: StorageGateway | None = None,
        progress: ProgressAggregator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.storage = storage
        self.progress = progress if progress is not None else ProgressAggregator()

        policy = RetryPolicy(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )
        self.retry = RetryController(policy, sleep=sleep)
        self.strategies: dict[StrategyKind, TransferStrategy] = {
            StrategyKind.CHUNKED: ChunkedTransferStrategy(
                api,
                storage,
                self.progress,
                chunk_size=config.chunk_size,
                chunk_retry=RetryController(policy, sleep=sleep),
            ),
            StrategyKind.DIRECT: DirectTransferStrategy(api, storage, self.progress),
            StrategyKind.PROXY: ProxyTransferStrategy(api, self.progress),
        }
        self._direct_available: bool | None = None
        self._probe_lock = asyncio.Lock()

    async def direct_available(self) -> bool:
        """Probe the storage gateway once and remember the answer."""
        if self._direct_available is None:
            async with self._probe_lock:
                if self._direct_available is None:
                    # the SDK probe reads credentials from disk
                    self._direct_available = self.storage is not None and await asyncio.to_thread(
                        self.storage.available
                    )
        return self._direct_available

    async def select_strategy(self, task: UploadTask) -> StrategyKind:
        if self.config.chunked_upload and task.size > self.config.chunk_threshold:
            return StrategyKind.CHUNKED
        if await self.direct_available():
            return StrategyKind.DIRECT
        return StrategyKind.PROXY

    async def next_strategy(self, current: StrategyKind) -> StrategyKind | None:
        fallback = FALLBACK_CHAIN[current]
        if fallback is StrategyKind.DIRECT and not await self.direct_available():
            fallback = FALLBACK_CHAIN[fallback]
        return fallback

    def timeout_for(self, task: UploadTask) -> float:
        if task.strategy is StrategyKind.CHUNKED:
            return self.config.chunked_task_timeout
        return self.config.task_timeout

    async def run(self, task: UploadTask) -> UploadResult:
        """
        Upload one task.

        Returns:
            UploadResult for the stored object

        Raises:
            ValidationError before any network call, TaskTimeoutError when the
            task deadline expires, or the terminal error from the last attempt.
        """
        self.progress.register(task.task_id, task.size)
        try:
            ensure_valid(task, self.config)
        except ValidationError as e:
            self._fail(task, e)
            raise

        task.state = TaskState.PREPARING
        task.strategy = await self.select_strategy(task)
        timeout = self.timeout_for(task)
        logger.info("%s: uploading %s (%d bytes) via %s", task.task_id, task.file_name, task.size, task.strategy.value)

        try:
            result = await asyncio.wait_for(self.retry.run(partial(self._attempt, task), task=task), timeout)
        except asyncio.TimeoutError as e:
            error = TaskTimeoutError(f"{task.file_name} did not finish within {timeout:.0f}s")
            self._fail(task, error)
            raise error from e
        except Exception as e:
            self._fail(task, e)
            raise

        task.state = TaskState.SUCCEEDED
        self.progress.complete(task.task_id)
        logger.info("%s: %s stored at %s after %d attempt(s)", task.task_id, task.file_name, result.storage_path, task.attempts)
        return result

    async def _attempt(self, task: UploadTask) -> UploadResult:
        # one progress reset per retry attempt; strategy switches keep the percentage
        self.progress.start_attempt(task.task_id, indeterminate=task.strategy is StrategyKind.PROXY)
        while True:
            strategy = self.strategies[task.strategy]
            task.state = TaskState.TRANSFERRING
            try:
                stored = await strategy.transfer(task)
            except PolicyError as e:
                fallback = await self.next_strategy(task.strategy)
                if fallback is None:
                    raise
                logger.warning(
                    "%s: %s transfer unusable (%s), switching to %s",
                    task.task_id,
                    task.strategy.value,
                    e,
                    fallback.value,
                )
                task.strategy = fallback
                continue
            break

        # finalize errors are never a fallback trigger
        task.state = TaskState.FINALIZING
        await strategy.finalize(task, stored)

        return UploadResult(
            task_id=task.task_id,
            address=stored.address,
            storage_path=stored.storage_path,
            file_name=task.file_name,
            size=task.size,
            content_type=task.content_type,
            strategy=task.strategy,
            attempts=task.attempts,
        )

    def _fail(self, task: UploadTask, error: BaseException) -> None:
        task.state = TaskState.FAILED
        task.error = error
        logger.error("%s: %s failed: %s", task.task_id, task.file_name, error)
