"""Pre-flight checks run before any network call."""

from dataclasses import dataclass, field
from typing import Any

from mediaferry.config import TransferConfig
from mediaferry.errors import ContentTypeError, EmptyFileError, FileTooLargeError, ValidationError
from mediaferry.models import UploadTask


@dataclass
class ValidationIssue:
    """A single reason a task cannot be uploaded."""

    task_id: str
    field: str
    error: str
    value: Any | None = None
    error_type: type[ValidationError] = ValidationError


@dataclass
class ValidationResult:
    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)

    def raise_for_issues(self) -> None:
        """Raise the typed error for the first issue, if any."""
        if self.issues:
            first = self.issues[0]
            message = "; ".join(issue.error for issue in self.issues)
            raise first.error_type(message)


def validate_task(task: UploadTask, config: TransferConfig) -> ValidationResult:
    """
    Check a task against size and content-type limits.

    Steps:
    1. Reject zero-byte payloads
    2. Reject payloads above max_file_size
    3. Reject content types outside the allow-list (an empty list allows all)
    4. Require a file name

    Args:
        task: Task to check
        config: Transfer configuration holding the limits

    Returns:
        ValidationResult listing every issue found
    """
    issues: list[ValidationIssue] = []

    if task.size == 0:
        issues.append(
            ValidationIssue(
                task_id=task.task_id,
                field="payload",
                error=f"{task.file_name} is empty",
                value=0,
                error_type=EmptyFileError,
            )
        )
    elif task.size > config.max_file_size:
        issues.append(
            ValidationIssue(
                task_id=task.task_id,
                field="payload",
                error=f"{task.file_name} exceeds the {config.max_file_size} byte limit",
                value=task.size,
                error_type=FileTooLargeError,
            )
        )

    allowed = config.allowed_content_types
    if allowed and task.content_type not in allowed:
        issues.append(
            ValidationIssue(
                task_id=task.task_id,
                field="content_type",
                error=f"content type {task.content_type} is not supported",
                value=task.content_type,
                error_type=ContentTypeError,
            )
        )

    if not task.file_name.strip():
        issues.append(ValidationIssue(task_id=task.task_id, field="file_name", error="file name is required"))

    return ValidationResult(is_valid=not issues, issues=issues)


def ensure_valid(task: UploadTask, config: TransferConfig) -> None:
    """Raise a ValidationError subclass if the task fails pre-flight checks."""
    validate_task(task, config).raise_for_issues()
