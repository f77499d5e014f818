"""Direct upload through the storage SDK."""

import logging

from mediaferry.errors import StorageUnavailableError
from mediaferry.models import StoredObject, StrategyKind, UploadTask
from mediaferry.pipeline.progress import ProgressAggregator
from mediaferry.pipeline.strategies.base import StorageGateway, TransferStrategy
from mediaferry.transfer_api import TransferApi

logger = logging.getLogger(__name__)


class DirectTransferStrategy(TransferStrategy):
    """
    Write the payload straight to storage at a server-chosen path.

    Flow:
    1. prepare-transfer returns the destination path
    2. SDK upload, progress as the SDK consumes the payload
    3. resolve a retrievable address
    4. finalize-transfer with the destination path and address
    """

    kind = StrategyKind.DIRECT

    def __init__(self, api: TransferApi, storage: StorageGateway | None, progress: ProgressAggregator):
        super().__init__(api, progress)
        self.storage = storage

    async def transfer(self, task: UploadTask) -> StoredObject:
        if self.storage is None:
            raise StorageUnavailableError("no storage gateway configured for direct uploads")

        prepared = await self.api.prepare_direct(task)
        path = prepared.destination_path
        logger.debug("%s: writing %d bytes to %s", task.task_id, task.size, path)

        await self.storage.upload(
            path,
            task.payload,
            task.content_type,
            on_progress=lambda n: self.progress.update(task.task_id, n),
        )
        address = await self.storage.address_for(path)
        return StoredObject(address=address, storage_path=path)

    async def finalize(self, task: UploadTask, stored: StoredObject) -> None:
        await self.api.finalize(task, stored.address, destination_path=stored.storage_path)
