"""Typed failures raised by the transfer pipeline."""


class TransferError(Exception):
    """Base class for every failure the pipeline reports."""

    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(TransferError):
    """Payload rejected before any network call."""


class EmptyFileError(ValidationError):
    pass


class FileTooLargeError(ValidationError):
    pass


class ContentTypeError(ValidationError):
    pass


class NetworkError(TransferError):
    """Connection-level failure (refused, reset, DNS)."""

    retryable = True


class UploadTimeoutError(TransferError):
    """A single request or attempt ran out of time."""

    retryable = True


class TaskTimeoutError(UploadTimeoutError):
    """The task-level deadline expired."""

    retryable = False


class BatchTimeoutError(UploadTimeoutError):
    """The batch deadline expired before this task settled."""

    retryable = False


class PolicyError(TransferError):
    """Storage rejected direct writes from this client.

    Retrying the same strategy cannot help; the orchestrator switches to the
    next strategy in the fallback chain instead.
    """


class StorageUnavailableError(PolicyError):
    """Storage or presigned transfer is not configured or not reachable."""


class ServerError(TransferError):
    """5xx from the application server or storage, or a malformed reply."""

    retryable = True


class ChunkRejectedError(TransferError):
    """A chunk PUT came back with a status other than 200/201/308."""

    retryable = True


class AbortedError(TransferError):
    """The caller aborted the transfer."""


class RetriesExhaustedError(TransferError):
    """Every attempt failed with a retryable error."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(
            f"gave up after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
        self.last_error = last_error
        self.attempts = attempts
