"""Object storage backend and canonical key generation."""

from __future__ import annotations

import datetime as dt
import io
import logging
import threading
from typing import Callable, Optional, Protocol
from urllib.parse import quote

from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError

from .config import MAX_ASSET_BYTES, StorageConfig
from .errors import StorageError, StorageWriteError, UnsupportedFileError
from .filetypes import (
    DOCUMENTS,
    IMAGES,
    classify,
    is_document_extension,
    is_image_extension,
    mime_type,
    split_extension,
)
from .images import new_asset_name
from .models import MaterializedAsset, StoredObject

logger = logging.getLogger("mdx_rehost.storage")

MARKDOWN_CONTENT_TYPE = "text/markdown; charset=utf-8"
_MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "NotFound"}
_BACKEND_ERRORS = (MinioException, HTTPError, OSError)


class ObjectStore(Protocol):
    """Capabilities the pipeline needs from a blob store."""

    @property
    def url_prefix(self) -> str: ...

    def ensure_bucket(self) -> None: ...

    def put(self, key: str, data: bytes, content_type: str) -> str: ...

    def get(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def url(self, key: str) -> str: ...


class MinioObjectStore:
    """``ObjectStore`` implementation backed by a MinIO/S3 bucket."""

    def __init__(self, config: StorageConfig, client: Optional[Minio] = None) -> None:
        self.config = config
        self.bucket = config.bucket
        self._client = client or Minio(
            config.host,
            access_key=config.access_key,
            secret_key=config.secret_key,
            secure=config.secure,
            region=config.region,
        )
        self._bucket_ready = False
        self._bucket_lock = threading.Lock()

    @property
    def url_prefix(self) -> str:
        return self.config.base_url

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""
        with self._bucket_lock:
            if self._bucket_ready:
                return
            try:
                if not self._client.bucket_exists(bucket_name=self.bucket):
                    self._client.make_bucket(bucket_name=self.bucket)
                    logger.info("Created bucket %s", self.bucket)
            except _BACKEND_ERRORS as exc:
                raise StorageError(f"Failed to initialise bucket {self.bucket}: {exc}") from exc
            self._bucket_ready = True

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.ensure_bucket()
            self._client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except StorageError as exc:
            raise StorageWriteError(str(exc)) from exc
        except _BACKEND_ERRORS as exc:
            raise StorageWriteError(f"Failed to upload {key}: {exc}") from exc
        logger.info("Stored %s (%d bytes)", key, len(data))
        return self.url(key)

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(bucket_name=self.bucket, object_name=key)
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def exists(self, key: str) -> bool:
        try:
            self._client.stat_object(bucket_name=self.bucket, object_name=key)
        except S3Error as exc:
            if exc.code in _MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to stat {key}: {exc}") from exc
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"Failed to stat {key}: {exc}") from exc
        return True

    def delete(self, key: str) -> bool:
        if not self.exists(key):
            return False
        try:
            self._client.remove_object(bucket_name=self.bucket, object_name=key)
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        logger.info("Deleted %s", key)
        return True

    def url(self, key: str) -> str:
        if self.config.presigned_expiry > 0:
            try:
                return self._client.presigned_get_object(
                    bucket_name=self.bucket,
                    object_name=key,
                    expires=dt.timedelta(seconds=self.config.presigned_expiry),
                )
            except _BACKEND_ERRORS as exc:
                raise StorageError(f"Failed to sign URL for {key}: {exc}") from exc
        return f"{self.url_prefix}/{self.bucket}/{quote(key)}"


def build_object_key(partition: str, category: str, name: str, extension: str) -> str:
    """Compose ``<partition>/<category>/<name>.<extension>``."""
    filename = f"{name}.{extension}" if extension else name
    return f"{partition}/{category}/{filename}"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class AssetStore:
    """Derive canonical keys for assets and write them to the backend.

    This is the only component of the pipeline that writes objects.
    """

    def __init__(
        self,
        backend: ObjectStore,
        clock: Callable[[], dt.datetime] = _utc_now,
        max_upload_bytes: int = MAX_ASSET_BYTES,
    ) -> None:
        self.backend = backend
        self.clock = clock
        self.max_upload_bytes = max_upload_bytes

    @property
    def url_prefix(self) -> str:
        return self.backend.url_prefix

    def partition(self) -> str:
        return self.clock().strftime("%Y%m%d")

    def _write(self, key: str, data: bytes, content_type: str, filename: str) -> StoredObject:
        try:
            url = self.backend.put(key, data, content_type)
        except StorageWriteError:
            raise
        except StorageError as exc:
            raise StorageWriteError(str(exc)) from exc
        return StoredObject(
            key=key,
            url=url,
            size=len(data),
            content_type=content_type,
            filename=filename,
            uploaded_at=self.clock().strftime("%Y-%m-%d %H:%M:%S"),
        )

    def store(self, asset: MaterializedAsset) -> StoredObject:
        key = build_object_key(
            self.partition(), classify(asset.extension), asset.suggested_name, asset.extension
        )
        filename = key.rsplit("/", 1)[-1]
        return self._write(key, asset.data, asset.content_type, filename)

    def upload(self, data: bytes, filename: str, category: Optional[str] = None) -> StoredObject:
        """Store a standalone file under a fresh key in its category."""
        extension = split_extension(filename)
        if category == IMAGES and not is_image_extension(extension):
            raise UnsupportedFileError(f"{filename} is not a supported image")
        if category == DOCUMENTS and not is_document_extension(extension):
            raise UnsupportedFileError(f"{filename} is not a supported document")
        if not (is_image_extension(extension) or is_document_extension(extension)):
            raise UnsupportedFileError(f"Unsupported file type: {filename}")
        if not data:
            raise UnsupportedFileError(f"{filename} is empty")
        if len(data) > self.max_upload_bytes:
            raise UnsupportedFileError(
                f"{filename} is larger than {self.max_upload_bytes // (1024 * 1024)}MB"
            )

        content_type = MARKDOWN_CONTENT_TYPE if extension == "md" else mime_type(extension)
        key = build_object_key(
            self.partition(), category or classify(extension), new_asset_name(), extension
        )
        return self._write(key, data, content_type, filename)

    def replace_document(self, key: str, text: str) -> StoredObject:
        """Overwrite an existing Markdown object in place."""
        data = text.encode("utf-8")
        return self._write(key, data, MARKDOWN_CONTENT_TYPE, key.rsplit("/", 1)[-1])
