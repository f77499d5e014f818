"""Fallback upload relayed through the application server."""

import logging

from mediaferry.models import StoredObject, StrategyKind, UploadTask
from mediaferry.pipeline.strategies.base import TransferStrategy

logger = logging.getLogger(__name__)


class ProxyTransferStrategy(TransferStrategy):
    """
    Send the whole payload as one multipart request to the server.

    The server writes to storage and registers metadata itself, so there is
    nothing left to finalize. Relay progress is not observable from here:
    the task reports an indeterminate snapshot until it completes.
    """

    kind = StrategyKind.PROXY

    async def transfer(self, task: UploadTask) -> StoredObject:
        self.progress.mark_indeterminate(task.task_id)
        reply = await self.api.proxy_upload(task)
        logger.debug("%s: server stored %s at %s", task.task_id, task.file_name, reply.storage_path)
        return StoredObject(address=reply.address or "", storage_path=reply.storage_path or "")

    async def finalize(self, task: UploadTask, stored: StoredObject) -> None:
        return None
