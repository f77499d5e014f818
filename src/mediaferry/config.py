"""Configuration loading and validation."""

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, field_validator, model_validator

MiB = 1024 * 1024
GiB = 1024 * MiB

DEFAULT_ALLOWED_CONTENT_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/tiff",
    "image/x-adobe-dng",
    "image/x-canon-cr2",
    "image/x-canon-crw",
    "image/x-nikon-nef",
    "image/x-sony-arw",
    "image/x-panasonic-raw",
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "application/pdf",
    "application/zip",
    "application/x-zip-compressed",
]


class FirebaseConfig(BaseModel):
    """Firebase Storage configuration for a specific environment."""

    credentials_path: Path
    storage_bucket: str
    public_objects: bool = True
    signed_url_ttl: int = 7 * 24 * 3600

    @field_validator("credentials_path", mode="before")
    @classmethod
    def expand_path(cls, v: str) -> Path:
        """Expand environment variables and ~ in path."""
        expanded = os.path.expandvars(os.path.expanduser(str(v)))
        return Path(expanded)


class EndpointConfig(BaseModel):
    """Application server endpoints. `{destination}` is the job id."""

    prepare: str = "/api/jobs/{destination}/upload"
    prepare_chunked: str = "/api/jobs/{destination}/generate-signed-url"
    finalize: str = "/api/jobs/{destination}/process-file"
    proxy: str = "/api/jobs/{destination}/upload-file"


class TransferConfig(BaseModel):
    """Transfer pipeline configuration."""

    api_base_url: str = "http://localhost:5000"
    endpoints: EndpointConfig = EndpointConfig()
    headers: dict[str, str] = {}

    # chunking
    chunk_size: int = 5 * MiB
    chunk_threshold: int = 5 * MiB
    chunked_upload: bool = True
    stream_block_size: int = 256 * 1024

    # retry
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None

    # timeouts, seconds
    request_timeout: float = 60.0
    chunk_timeout: float = 120.0
    task_timeout: float = 600.0
    chunked_task_timeout: float = 900.0
    batch_timeout: float = 600.0

    # pre-flight
    max_file_size: int = 2 * GiB
    allowed_content_types: list[str] = DEFAULT_ALLOWED_CONTENT_TYPES
    default_category: str = "photography"

    @field_validator("chunk_size", "stream_block_size", "max_attempts")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @model_validator(mode="after")
    def _check_timeouts(self) -> "TransferConfig":
        for name in ("request_timeout", "chunk_timeout", "task_timeout", "chunked_task_timeout", "batch_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        return self


Env = Literal["prod", "dev"]


def load_firebase_config(config_path: Path, env: Env = "dev") -> FirebaseConfig:
    """Load Firebase config for the specified environment."""
    with open(config_path) as f:
        data = yaml.safe_load(f)

    if env not in data:
        raise ValueError(f"Environment '{env}' not found in config. Available: {list(data.keys())}")

    return FirebaseConfig(**data[env])


def load_transfer_config(config_path: Path) -> TransferConfig:
    """Load transfer pipeline configuration."""
    with open(config_path) as f:
        data = yaml.safe_load(f)

    return TransferConfig(**(data or {}))
