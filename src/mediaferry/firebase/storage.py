"""Direct writes to Firebase Storage through the Admin SDK."""

import asyncio
import io
import logging
from collections.abc import Callable
from datetime import timedelta

import requests
from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exc

from mediaferry.config import FirebaseConfig
from mediaferry.errors import (
    NetworkError,
    PolicyError,
    ServerError,
    StorageUnavailableError,
    TransferError,
    UploadTimeoutError,
)
from mediaferry.firebase.client import get_storage_bucket, init_firebase

logger = logging.getLogger(__name__)


class _ProgressStream(io.BytesIO):
    """BytesIO that reports its read position after every read."""

    def __init__(self, payload: bytes, report: Callable[[int], None]):
        super().__init__(payload)
        self._report = report

    def read(self, size: int | None = -1) -> bytes:
        data = super().read(size)
        if data:
            self._report(self.tell())
        return data


def classify_storage_error(error: Exception) -> TransferError:
    """Map SDK and transport exceptions onto the pipeline's error types."""
    if isinstance(error, TransferError):
        return error
    if isinstance(error, (gexc.Unauthorized, gexc.Forbidden)):
        return PolicyError(f"storage rejected direct write: {error}", status_code=error.code)
    if isinstance(error, gexc.NotFound):
        return StorageUnavailableError(f"storage bucket not found: {error}", status_code=404)
    if isinstance(error, (gexc.TooManyRequests, gexc.ServerError)):
        return ServerError(f"storage error: {error}", status_code=error.code)
    if isinstance(error, gexc.GoogleAPICallError):
        return TransferError(f"storage error: {error}", status_code=error.code)
    if isinstance(error, (FileNotFoundError, ValueError, auth_exc.DefaultCredentialsError)):
        return StorageUnavailableError(f"storage is not configured: {error}")
    if isinstance(error, auth_exc.TransportError):
        return NetworkError(f"could not reach auth endpoint: {error}")
    if isinstance(error, requests.exceptions.Timeout):
        return UploadTimeoutError(f"storage request timed out: {error}")
    if isinstance(error, requests.exceptions.ConnectionError):
        return NetworkError(f"could not reach storage: {error}")
    return TransferError(f"unexpected storage failure: {error!r}")


class FirebaseStorage:
    """Storage gateway backed by the configured Firebase bucket."""

    def __init__(self, config: FirebaseConfig, timeout: float = 60.0):
        self.config = config
        self.timeout = timeout

    def available(self) -> bool:
        """Probe whether direct writes can be attempted at all."""
        try:
            init_firebase(self.config)
        except (FileNotFoundError, ValueError) as e:
            logger.warning("Firebase Storage unavailable, direct uploads disabled: %s", e)
            return False
        return True

    async def upload(
        self,
        path: str,
        payload: bytes,
        content_type: str,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        """
        Write `payload` to `path`, reporting bytes read by the SDK.

        The SDK call blocks, so it runs in a worker thread; progress is posted
        back onto the event loop.
        """
        loop = asyncio.get_running_loop()

        def report(position: int) -> None:
            if on_progress is not None:
                loop.call_soon_threadsafe(on_progress, position)

        try:
            await asyncio.to_thread(self._upload_blocking, path, payload, content_type, report)
        except Exception as e:
            raise classify_storage_error(e) from e

    async def address_for(self, path: str) -> str:
        """Retrievable URL for an object already written to `path`."""
        try:
            return await asyncio.to_thread(self._address_blocking, path)
        except Exception as e:
            raise classify_storage_error(e) from e

    def _upload_blocking(self, path: str, payload: bytes, content_type: str, report: Callable[[int], None]) -> None:
        bucket = get_storage_bucket(self.config)
        blob = bucket.blob(path)
        stream = _ProgressStream(payload, report)
        blob.upload_from_file(stream, size=len(payload), content_type=content_type, timeout=self.timeout)
        logger.debug("Wrote %d bytes to gs://%s/%s", len(payload), bucket.name, path)

    def _address_blocking(self, path: str) -> str:
        bucket = get_storage_bucket(self.config)
        blob = bucket.blob(path)
        if self.config.public_objects:
            blob.make_public()
            return blob.public_url
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=self.config.signed_url_ttl),
            method="GET",
        )
