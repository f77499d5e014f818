"""HTTP client for the application server's transfer endpoints."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as ResponseShapeError

from mediaferry.config import TransferConfig
from mediaferry.errors import (
    ChunkRejectedError,
    ContentTypeError,
    FileTooLargeError,
    NetworkError,
    PolicyError,
    ServerError,
    StorageUnavailableError,
    TransferError,
    UploadTimeoutError,
    ValidationError,
)
from mediaferry.models import ChunkDescriptor, UploadTask

logger = logging.getLogger(__name__)

# 308 is "resume incomplete" for resumable sessions
CHUNK_OK_STATUSES = frozenset({200, 201, 308})

# statuses meaning the endpoint itself is missing or storage is down
UNAVAILABLE_STATUSES = frozenset({404, 501, 503})


class _Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PreparedDirect(_Response):
    destination_path: str = Field(validation_alias=AliasChoices("destinationPath", "firebasePath"))


class PreparedChunked(_Response):
    upload_url: str = Field(validation_alias=AliasChoices("uploadUrl", "signedUrl"))
    storage_key: str = Field(validation_alias=AliasChoices("storageKey", "filePath", "s3Key"))
    download_url: str | None = Field(default=None, validation_alias=AliasChoices("downloadUrl", "address"))


class ProxyReply(_Response):
    success: bool = True
    error: str | None = None
    address: str | None = Field(default=None, validation_alias=AliasChoices("address", "downloadUrl"))
    storage_path: str | None = Field(
        default=None, validation_alias=AliasChoices("storagePath", "firebasePath", "destinationPath")
    )
    file_name: str | None = Field(default=None, validation_alias=AliasChoices("fileName", "file_name"))
    file_size: int | None = Field(default=None, validation_alias=AliasChoices("fileSize", "file_size"))
    content_type: str | None = Field(default=None, validation_alias=AliasChoices("contentType", "content_type"))


def error_for_response(response: httpx.Response, *, unavailable_means_fallback: bool = False) -> TransferError:
    """Classify a non-2xx response from the application server."""
    status = response.status_code
    detail = f"{response.request.method} {response.request.url.path} -> {status}: {response.text[:200]}"

    if unavailable_means_fallback and status in UNAVAILABLE_STATUSES:
        return StorageUnavailableError(detail, status_code=status)
    if status >= 500:
        return ServerError(detail, status_code=status)
    if status in (401, 403):
        return PolicyError(detail, status_code=status)
    if status == 413:
        return FileTooLargeError(detail, status_code=status)
    if status == 415:
        return ContentTypeError(detail, status_code=status)
    if status in (400, 422):
        return ValidationError(detail, status_code=status)
    return TransferError(detail, status_code=status)


def _error_for_transport(error: httpx.TransportError) -> TransferError:
    if isinstance(error, httpx.TimeoutException):
        return UploadTimeoutError(f"request timed out: {error!r}")
    return NetworkError(f"network error: {error!r}")


def metadata_fields(task: UploadTask) -> dict[str, Any]:
    """Descriptive fields every endpoint receives."""
    return {
        "fileName": task.file_name,
        "contentType": task.content_type,
        "fileSize": task.size,
        "mediaType": task.media_type.value,
        "category": task.category,
    }


class TransferApi:
    """
    Wrapper around the prepare/finalize/proxy endpoints and chunk PUTs.

    Every transport or HTTP failure leaves this class as a typed TransferError,
    so callers never inspect messages or status codes themselves.
    """

    def __init__(self, client: httpx.AsyncClient, config: TransferConfig):
        self._client = client
        self.config = config

    @classmethod
    def create_client(cls, config: TransferConfig, **kwargs: Any) -> httpx.AsyncClient:
        """Build the AsyncClient the pipeline expects for `config`."""
        return httpx.AsyncClient(
            base_url=config.api_base_url,
            headers=config.headers,
            timeout=httpx.Timeout(config.request_timeout),
            **kwargs,
        )

    def _path(self, template: str, task: UploadTask) -> str:
        return template.format(destination=task.destination)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise _error_for_transport(e) from e

    async def _post_json(self, url: str, body: dict[str, Any], *, unavailable_means_fallback: bool = False) -> Any:
        response = await self._request("POST", url, json=body)
        if response.is_error:
            raise error_for_response(response, unavailable_means_fallback=unavailable_means_fallback)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(f"invalid JSON from {url}: {response.text[:200]}", status_code=response.status_code) from e

    async def prepare_direct(self, task: UploadTask) -> PreparedDirect:
        """Ask the server where to write the object."""
        url = self._path(self.config.endpoints.prepare, task)
        data = await self._post_json(url, metadata_fields(task), unavailable_means_fallback=True)
        try:
            return PreparedDirect.model_validate(data)
        except ResponseShapeError as e:
            raise ServerError(f"prepare response has no destination path: {data}") from e

    async def prepare_chunked(self, task: UploadTask) -> PreparedChunked:
        """Ask the server for a presigned URL and storage key."""
        url = self._path(self.config.endpoints.prepare_chunked, task)
        data = await self._post_json(url, metadata_fields(task), unavailable_means_fallback=True)
        try:
            return PreparedChunked.model_validate(data)
        except ResponseShapeError as e:
            raise ServerError(f"prepare response has no upload URL: {data}") from e

    async def finalize(self, task: UploadTask, address: str, *, destination_path: str | None = None, storage_key: str | None = None) -> None:
        """Register metadata for a completed object. Safe to call again for the same task."""
        body = metadata_fields(task)
        body["address"] = address
        if destination_path is not None:
            body["destinationPath"] = destination_path
        if storage_key is not None:
            body["storageKey"] = storage_key
        url = self._path(self.config.endpoints.finalize, task)
        await self._post_json(url, body)

    async def put_chunk(
        self,
        upload_url: str,
        task: UploadTask,
        chunk: ChunkDescriptor,
        on_sent: Callable[[int], None] | None = None,
    ) -> int:
        """
        PUT one chunk to the presigned URL.

        Returns:
            The response status (200, 201 or 308)

        Raises:
            ChunkRejectedError for any other status.
        """
        data = task.payload[chunk.start:chunk.end]
        headers = {
            "Content-Range": chunk.content_range(task.size),
            "Content-Type": task.content_type,
            "Content-Length": str(chunk.size),
        }
        response = await self._request(
            "PUT",
            upload_url,
            content=self._stream(data, on_sent),
            headers=headers,
            timeout=httpx.Timeout(self.config.chunk_timeout),
        )
        if response.status_code not in CHUNK_OK_STATUSES:
            raise ChunkRejectedError(
                f"chunk {chunk.index} rejected: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.status_code

    async def proxy_upload(self, task: UploadTask) -> ProxyReply:
        """Send the whole payload through the application server."""
        url = self._path(self.config.endpoints.proxy, task)
        fields = {k: str(v) for k, v in metadata_fields(task).items()}
        files = {"file": (task.file_name, task.payload, task.content_type)}
        response = await self._request("POST", url, data=fields, files=files)
        if response.is_error:
            raise error_for_response(response)
        try:
            reply = ProxyReply.model_validate(response.json())
        except (ValueError, ResponseShapeError) as e:
            raise ServerError(f"failed to parse proxy response: {response.text[:200]}") from e
        if not reply.success:
            raise ServerError(reply.error or "proxy upload failed without success flag")
        if not reply.storage_path:
            raise ServerError("invalid proxy response: missing storage path")
        return reply

    async def _stream(self, data: bytes, on_sent: Callable[[int], None] | None) -> AsyncIterator[bytes]:
        block = self.config.stream_block_size
        sent = 0
        for offset in range(0, len(data), block):
            piece = data[offset:offset + block]
            yield piece
            sent += len(piece)
            if on_sent is not None:
                on_sent(sent)
