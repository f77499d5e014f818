"""Pipeline data model."""

from mediaferry.models.transfer import (
    BatchResult,
    ChunkDescriptor,
    FailedUpload,
    MediaType,
    ProgressSnapshot,
    StoredObject,
    StrategyKind,
    TaskState,
    UploadRequest,
    UploadResult,
    UploadTask,
)

__all__ = [
    "BatchResult",
    "ChunkDescriptor",
    "FailedUpload",
    "MediaType",
    "ProgressSnapshot",
    "StoredObject",
    "StrategyKind",
    "TaskState",
    "UploadRequest",
    "UploadResult",
    "UploadTask",
]
