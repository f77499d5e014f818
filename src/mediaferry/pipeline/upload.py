"""Caller-facing entry points: submit a batch or a single upload."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager

import httpx

from mediaferry.config import FirebaseConfig, TransferConfig
from mediaferry.firebase.storage import FirebaseStorage
from mediaferry.models import BatchResult, UploadRequest, UploadResult, UploadTask
from mediaferry.pipeline.batch import BatchCoordinator
from mediaferry.pipeline.orchestrator import UploadOrchestrator
from mediaferry.pipeline.progress import ProgressAggregator, ProgressCallback
from mediaferry.pipeline.strategies import StorageGateway
from mediaferry.transfer_api import TransferApi


@asynccontextmanager
async def _api(config: TransferConfig, client: httpx.AsyncClient | None) -> AsyncIterator[TransferApi]:
    if client is not None:
        yield TransferApi(client, config)
        return
    async with TransferApi.create_client(config) as owned:
        yield TransferApi(owned, config)


def _storage(
    config: TransferConfig,
    firebase_config: FirebaseConfig | None,
    storage: StorageGateway | None,
) -> StorageGateway | None:
    if storage is not None or firebase_config is None:
        return storage
    return FirebaseStorage(firebase_config, timeout=config.request_timeout)


async def submit_batch(
    requests: Sequence[UploadRequest],
    *,
    config: TransferConfig | None = None,
    firebase_config: FirebaseConfig | None = None,
    storage: StorageGateway | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BatchResult:
    """
    Upload several payloads concurrently.

    Failures are reported in the returned BatchResult; this call only raises
    if it is itself cancelled.

    Args:
        requests: Payloads to upload
        config: Transfer configuration (defaults apply when omitted)
        firebase_config: Enables direct SDK uploads when given
        storage: Storage gateway to use instead of one built from firebase_config
        client: httpx client to reuse; one is created and closed otherwise
        on_progress: Receives a ProgressSnapshot on every progress change
        sleep: Backoff sleep, replaceable for tests

    Returns:
        BatchResult with one entry per request
    """
    config = config or TransferConfig()
    async with _api(config, client) as api:
        coordinator = BatchCoordinator(api, config, _storage(config, firebase_config, storage), sleep=sleep)
        return await coordinator.run(requests, on_progress)


async def submit_single(
    request: UploadRequest,
    *,
    config: TransferConfig | None = None,
    firebase_config: FirebaseConfig | None = None,
    storage: StorageGateway | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> UploadResult:
    """
    Upload one payload.

    Raises:
        TransferError subclass describing the terminal failure.
    """
    config = config or TransferConfig()
    task = UploadTask.from_request(request, config.default_category)
    progress = ProgressAggregator(on_progress)
    async with _api(config, client) as api:
        orchestrator = UploadOrchestrator(api, config, _storage(config, firebase_config, storage), progress, sleep=sleep)
        try:
            return await orchestrator.run(task)
        finally:
            progress.clear()
