"""Pipeline for moving media payloads into cloud storage."""

from .batch import BatchCoordinator
from .orchestrator import UploadOrchestrator
from .upload import submit_batch, submit_single

__all__ = ["BatchCoordinator", "UploadOrchestrator", "submit_batch", "submit_single"]
