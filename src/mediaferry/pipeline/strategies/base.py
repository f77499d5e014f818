"""Common interface for transfer strategies."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol

from mediaferry.models import StoredObject, StrategyKind, UploadTask
from mediaferry.pipeline.progress import ProgressAggregator
from mediaferry.transfer_api import TransferApi


class StorageGateway(Protocol):
    """What strategies need from the storage provider's SDK."""

    def available(self) -> bool: ...

    async def upload(
        self,
        path: str,
        payload: bytes,
        content_type: str,
        on_progress: Callable[[int], None] | None = None,
    ) -> None: ...

    async def address_for(self, path: str) -> str: ...


class TransferStrategy(ABC):
    """
    One way of getting a task's bytes into storage.

    `transfer` moves the bytes and returns where they landed; `finalize`
    registers the object's metadata with the application server. The
    orchestrator calls them in that order within a single attempt.
    """

    kind: StrategyKind

    def __init__(self, api: TransferApi, progress: ProgressAggregator):
        self.api = api
        self.progress = progress

    @abstractmethod
    async def transfer(self, task: UploadTask) -> StoredObject:
        ...

    @abstractmethod
    async def finalize(self, task: UploadTask, stored: StoredObject) -> None:
        ...
