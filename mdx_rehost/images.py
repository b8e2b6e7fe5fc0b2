"""Turn image references into raw bytes ready for storage."""

from __future__ import annotations

import base64
import binascii
import logging
import uuid
from typing import Optional

import requests
from filetype import guess

from .config import RehostConfig
from .errors import DecodeError, FetchError
from .filetypes import mime_type
from .models import AssetKind, AssetReference, MaterializedAsset

logger = logging.getLogger("mdx_rehost.images")

_CHUNK_SIZE = 64 * 1024


def detect_image_mime(data: bytes) -> Optional[str]:
    """Detect an image MIME type from the file signature."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        return kind.mime
    return None


def resolve_content_type(
    declared: Optional[str],
    served: Optional[str],
    data: bytes,
    extension: str,
) -> str:
    """Pick a content type: declaration, then server header, then sniffing, then extension."""
    if declared:
        return declared
    if served:
        base = served.split(";")[0].strip().lower()
        if base.startswith("image/"):
            return base
    detected = detect_image_mime(data)
    if detected:
        return detected
    return mime_type(extension)


def new_asset_name() -> str:
    return uuid.uuid4().hex


class AssetMaterializer:
    """Decode inline payloads and download remote images.

    A single ``requests.Session`` is shared by all calls, so one instance can
    serve a whole worker pool.
    """

    def __init__(
        self,
        config: Optional[RehostConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or RehostConfig()
        self.session = session or requests.Session()

    def materialize(self, reference: AssetReference) -> MaterializedAsset:
        if reference.kind is AssetKind.INLINE_BASE64:
            return self._decode_inline(reference)
        return self._download(reference)

    def _decode_inline(self, reference: AssetReference) -> MaterializedAsset:
        try:
            data = base64.b64decode(reference.payload or "", validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Invalid base64 payload: {exc}") from exc
        if not data:
            raise DecodeError("Empty base64 payload")
        if len(data) > self.config.max_asset_bytes:
            raise DecodeError(
                f"Inline image larger than {self.config.max_asset_bytes} bytes"
            )
        declared = reference.locator.split(";", 1)[0][len("data:") :].lower()
        return MaterializedAsset(
            data=data,
            content_type=declared,
            extension=reference.extension,
            suggested_name=new_asset_name(),
            kind=reference.kind,
        )

    def _read_body(self, url: str, response: requests.Response) -> bytes:
        limit = self.config.max_asset_bytes
        declared_length = response.headers.get("Content-Length")
        if declared_length and declared_length.isdigit() and int(declared_length) > limit:
            raise FetchError(url, f"image larger than {limit} bytes")
        chunks = []
        received = 0
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if not chunk:
                continue
            received += len(chunk)
            if received > limit:
                raise FetchError(url, f"image larger than {limit} bytes")
            chunks.append(chunk)
        return b"".join(chunks)

    def _download(self, reference: AssetReference) -> MaterializedAsset:
        url = reference.locator
        logger.info("Downloading %s", url)
        try:
            with self.session.get(
                url,
                headers={"User-Agent": self.config.user_agent},
                timeout=(self.config.connect_timeout, self.config.read_timeout),
                stream=True,
            ) as response:
                if response.status_code != 200:
                    raise FetchError(url, f"HTTP {response.status_code}")
                served = response.headers.get("Content-Type")
                data = self._read_body(url, response)
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        if not data:
            raise FetchError(url, "empty response body")

        if reference.kind is AssetKind.NAMED_REMOTE_URL:
            name = reference.alt_text
        else:
            name = new_asset_name()

        declared = mime_type(reference.extension) if reference.extension else None
        if declared and not declared.startswith("image/"):
            declared = None
        return MaterializedAsset(
            data=data,
            content_type=resolve_content_type(declared, served, data, reference.extension),
            extension=reference.extension,
            suggested_name=name,
            kind=reference.kind,
        )
