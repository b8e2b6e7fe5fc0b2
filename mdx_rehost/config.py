"""Configuration objects and constants for the rehosting pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

DEFAULT_IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "bmp"})
DEFAULT_NAMED_ALT_PATTERN = r"Image-\d+"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
MAX_ASSET_BYTES = 10 * 1024 * 1024


@dataclass
class RehostConfig:
    """Settings that control extraction, downloading and worker concurrency."""

    image_extensions: FrozenSet[str] = field(default_factory=lambda: DEFAULT_IMAGE_EXTENSIONS)
    named_alt_pattern: str = DEFAULT_NAMED_ALT_PATTERN
    max_asset_bytes: int = MAX_ASSET_BYTES
    connect_timeout: float = 5.0
    read_timeout: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT
    max_workers: int = 4


@dataclass
class StorageConfig:
    """Connection settings for the MinIO/S3 object store."""

    endpoint: str
    bucket: str
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    presigned_expiry: int = 0
    region: Optional[str] = None

    @property
    def secure(self) -> bool:
        return self.endpoint.startswith("https://")

    @property
    def host(self) -> str:
        return self.endpoint.replace("http://", "").replace("https://", "").rstrip("/")

    @property
    def base_url(self) -> str:
        if "://" in self.endpoint:
            return self.endpoint.rstrip("/")
        return f"http://{self.host}"

    @classmethod
    def from_env(cls) -> "StorageConfig":
        endpoint = os.getenv("MINIO_ENDPOINT")
        if not endpoint:
            raise RuntimeError("MINIO_ENDPOINT is not set")
        return cls(
            endpoint=endpoint,
            bucket=os.getenv("MINIO_BUCKET", "documents"),
            access_key=os.getenv("MINIO_ACCESS_KEY"),
            secret_key=os.getenv("MINIO_SECRET_KEY"),
            presigned_expiry=int(os.getenv("MINIO_PRESIGNED_EXPIRY", "0")),
            region=os.getenv("MINIO_REGION") or None,
        )
