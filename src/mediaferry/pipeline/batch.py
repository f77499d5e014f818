"""Concurrent fan-out of a batch of uploads under one deadline."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from mediaferry.config import TransferConfig
from mediaferry.errors import AbortedError, BatchTimeoutError
from mediaferry.models import BatchResult, FailedUpload, TaskState, UploadRequest, UploadTask
from mediaferry.pipeline.orchestrator import UploadOrchestrator
from mediaferry.pipeline.progress import ProgressAggregator, ProgressCallback
from mediaferry.pipeline.strategies import StorageGateway
from mediaferry.transfer_api import TransferApi

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """
    Runs one orchestration per request, all at once, and collects every outcome.

    Each batch owns its progress state and drops it once the batch settles. One
    task's failure never affects its siblings; tasks still running when the
    batch deadline fires are cancelled and reported with BatchTimeoutError.
    Several batches may run on one coordinator at the same time.
    """

    def __init__(
        self,
        api: TransferApi,
        config: TransferConfig,
        storage: StorageGateway | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.config = config
        self.storage = storage
        self._sleep = sleep
        self._in_flight: set[asyncio.Task] = set()

    def abort(self) -> None:
        """Cancel every task still in flight in any batch; they are reported as AbortedError."""
        for running in list(self._in_flight):
            running.cancel()

    def create_tasks(self, requests: Sequence[UploadRequest]) -> list[UploadTask]:
        return [UploadTask.from_request(r, self.config.default_category) for r in requests]

    async def run(self, requests: Sequence[UploadRequest], on_progress: ProgressCallback | None = None) -> BatchResult:
        """
        Upload every request concurrently.

        Args:
            requests: Payloads with destination and media type
            on_progress: Called with a ProgressSnapshot on every progress change

        Returns:
            BatchResult with one entry per request, in submission order
        """
        return await self.run_tasks(self.create_tasks(requests), on_progress)

    async def run_tasks(self, tasks: Sequence[UploadTask], on_progress: ProgressCallback | None = None) -> BatchResult:
        """Like `run`, for tasks the caller already created (to map task ids back to files)."""
        if not tasks:
            return BatchResult()

        progress = ProgressAggregator(on_progress)
        orchestrator = UploadOrchestrator(self.api, self.config, self.storage, progress, sleep=self._sleep)

        logger.info("Starting batch of %d uploads", len(tasks))
        running = [asyncio.create_task(orchestrator.run(task), name=f"upload-{task.task_id}") for task in tasks]
        self._in_flight.update(running)
        try:
            _, pending = await asyncio.wait(running, timeout=self.config.batch_timeout)
            for item in pending:
                item.cancel()
            if pending:
                logger.warning("Batch deadline of %.0fs hit with %d uploads unfinished", self.config.batch_timeout, len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
            result = self._collect(tasks, running, pending)
        except asyncio.CancelledError:
            for item in running:
                item.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise
        finally:
            progress.clear()
            self._in_flight.difference_update(running)

        logger.info("Batch complete: %d/%d uploaded", len(result.succeeded), result.total)
        return result

    def _collect(
        self,
        tasks: Sequence[UploadTask],
        running: list[asyncio.Task],
        timed_out: set[asyncio.Task],
    ) -> BatchResult:
        result = BatchResult()
        for task, item in zip(tasks, running):
            if item in timed_out:
                error: BaseException = BatchTimeoutError(
                    f"{task.file_name} still in progress when the {self.config.batch_timeout:.0f}s batch deadline expired"
                )
            elif item.cancelled():
                error = AbortedError(f"{task.file_name} upload was aborted")
            elif item.exception() is not None:
                error = item.exception()
            else:
                result.succeeded.append(item.result())
                continue

            task.state = TaskState.FAILED
            task.error = error
            result.failed.append(FailedUpload(task_id=task.task_id, file_name=task.file_name, error=error))
        return result
