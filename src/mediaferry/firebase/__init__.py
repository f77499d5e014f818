"""Firebase Storage client and gateway."""

from mediaferry.firebase.client import get_storage_bucket, init_firebase, reset_client
from mediaferry.firebase.storage import FirebaseStorage, classify_storage_error

__all__ = ["FirebaseStorage", "classify_storage_error", "get_storage_bucket", "init_firebase", "reset_client"]
