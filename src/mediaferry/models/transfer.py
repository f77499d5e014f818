"""Data model for upload tasks, chunks, progress and results."""

from __future__ import annotations

import mimetypes
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath


class MediaType(str, Enum):
    RAW = "raw"
    FINISHED = "finished"


class TaskState(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    TRANSFERRING = "transferring"
    RETRYING = "retrying"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StrategyKind(str, Enum):
    DIRECT = "direct"
    CHUNKED = "chunked"
    PROXY = "proxy"


# mimetypes does not know most camera RAW formats
RAW_CONTENT_TYPES = {
    ".dng": "image/x-adobe-dng",
    ".cr2": "image/x-canon-cr2",
    ".crw": "image/x-canon-crw",
    ".nef": "image/x-nikon-nef",
    ".arw": "image/x-sony-arw",
    ".rw2": "image/x-panasonic-raw",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(file_name: str) -> str:
    """Guess a content type from the file extension."""
    suffix = PurePath(file_name).suffix.lower()
    if suffix in RAW_CONTENT_TYPES:
        return RAW_CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or DEFAULT_CONTENT_TYPE


@dataclass
class UploadRequest:
    """A payload a caller wants delivered to a job."""

    payload: bytes
    destination: str | int
    file_name: str
    media_type: MediaType = MediaType.RAW
    content_type: str | None = None
    category: str | None = None


@dataclass
class UploadTask:
    """One payload moving through the pipeline.

    The id is assigned at submission and is unrelated to the file name, so two
    files with the same name in one batch never share progress or results.
    """

    payload: bytes
    destination: str
    file_name: str
    media_type: MediaType
    content_type: str
    category: str
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: TaskState = TaskState.PENDING
    attempts: int = 0
    strategy: StrategyKind | None = None
    error: BaseException | None = None

    @property
    def size(self) -> int:
        return len(self.payload)

    @classmethod
    def from_request(cls, request: UploadRequest, default_category: str) -> UploadTask:
        return cls(
            payload=request.payload,
            destination=str(request.destination),
            file_name=request.file_name,
            media_type=MediaType(request.media_type),
            content_type=request.content_type or guess_content_type(request.file_name),
            category=request.category or default_category,
        )


@dataclass(frozen=True)
class ChunkDescriptor:
    index: int
    start: int
    end: int  # exclusive

    @property
    def size(self) -> int:
        return self.end - self.start

    def content_range(self, total: int) -> str:
        """Value for the Content-Range header of this chunk's PUT."""
        return f"bytes {self.start}-{self.end - 1}/{total}"


@dataclass(frozen=True)
class ProgressSnapshot:
    task_id: str
    bytes_transferred: int
    total_bytes: int
    percentage: int
    attempt: int = 0
    indeterminate: bool = False


@dataclass(frozen=True)
class StoredObject:
    """Where a strategy put the bytes, before metadata is finalized."""

    address: str
    storage_path: str


@dataclass
class UploadResult:
    task_id: str
    address: str
    storage_path: str
    file_name: str
    size: int
    content_type: str
    strategy: StrategyKind | None = None
    attempts: int = 0


@dataclass
class FailedUpload:
    task_id: str
    file_name: str
    error: BaseException


@dataclass
class BatchResult:
    """Outcome of a batch; every submitted task lands in exactly one list."""

    succeeded: list[UploadResult] = field(default_factory=list)
    failed: list[FailedUpload] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed
