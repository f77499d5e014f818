"""Sequential chunk PUTs against a presigned URL."""

import logging
from functools import partial

from mediaferry.errors import TransferError
from mediaferry.models import StoredObject, StrategyKind, UploadTask
from mediaferry.pipeline.chunks import plan_chunks
from mediaferry.pipeline.progress import ProgressAggregator
from mediaferry.pipeline.retry import RetryController
from mediaferry.pipeline.strategies.base import StorageGateway, TransferStrategy
from mediaferry.transfer_api import TransferApi

logger = logging.getLogger(__name__)


class ChunkedTransferStrategy(TransferStrategy):
    """
    Upload large payloads as ordered byte ranges.

    Chunks go strictly one after another in index order; chunk N+1 starts only
    once chunk N's PUT has resolved. A rejected chunk is retried on its own
    through `chunk_retry` without restarting the sequence.
    """

    kind = StrategyKind.CHUNKED

    def __init__(
        self,
        api: TransferApi,
        storage: StorageGateway | None,
        progress: ProgressAggregator,
        chunk_size: int,
        chunk_retry: RetryController,
    ):
        super().__init__(api, progress)
        self.storage = storage
        self.chunk_size = chunk_size
        self.chunk_retry = chunk_retry

    async def transfer(self, task: UploadTask) -> StoredObject:
        prepared = await self.api.prepare_chunked(task)
        chunks = plan_chunks(task.size, self.chunk_size)
        logger.info("%s: uploading %s in %d chunks of %d bytes", task.task_id, task.file_name, len(chunks), self.chunk_size)

        completed = 0
        for chunk in chunks:
            on_sent = partial(self._report, task.task_id, completed)
            put = partial(self.api.put_chunk, prepared.upload_url, task, chunk, on_sent)
            await self.chunk_retry.run(put)
            completed += chunk.size
            self.progress.update(task.task_id, completed)
            logger.debug("%s: chunk %d/%d done (%s)", task.task_id, chunk.index + 1, len(chunks), chunk.content_range(task.size))

        address = await self._resolve_address(prepared.storage_key, prepared.download_url)
        return StoredObject(address=address, storage_path=prepared.storage_key)

    async def finalize(self, task: UploadTask, stored: StoredObject) -> None:
        await self.api.finalize(task, stored.address, storage_key=stored.storage_path)

    def _report(self, task_id: str, completed: int, in_flight: int) -> None:
        self.progress.update(task_id, completed + in_flight)

    async def _resolve_address(self, storage_key: str, download_url: str | None) -> str:
        if self.storage is not None:
            return await self.storage.address_for(storage_key)
        if download_url:
            return download_url
        raise TransferError(f"cannot resolve an address for {storage_key}: no storage gateway and no download URL")
