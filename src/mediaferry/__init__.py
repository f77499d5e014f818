"""Resilient media upload pipeline for Firebase Storage."""

from mediaferry.models import BatchResult, MediaType, UploadRequest, UploadResult
from mediaferry.pipeline import submit_batch, submit_single

__version__ = "0.1.0"

__all__ = ["BatchResult", "MediaType", "UploadRequest", "UploadResult", "submit_batch", "submit_single", "__version__"]
