"""Data models used throughout the rehosting pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class AssetKind(str, Enum):
    """How an image is referenced inside a document."""

    INLINE_BASE64 = "inline_base64"
    REMOTE_URL = "remote_url"
    NAMED_REMOTE_URL = "named_remote_url"


class RehostStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class EncodingBasis(str, Enum):
    """What an encoding guess was derived from."""

    BOM = "bom"
    HEURISTIC_CONTENT = "heuristic_content"
    DEFAULT = "default"


@dataclass(frozen=True)
class EncodingGuess:
    charset: str
    basis: EncodingBasis
    bom_length: int = 0


@dataclass(frozen=True)
class AssetReference:
    """Image mention discovered while scanning a Markdown document."""

    kind: AssetKind
    alt_text: str
    locator: str
    extension: str
    original_span: str
    payload: Optional[str] = None
    start: int = 0

    @property
    def is_remote(self) -> bool:
        return self.kind is not AssetKind.INLINE_BASE64


@dataclass
class MaterializedAsset:
    """Resolved image bytes ready to be written to the object store."""

    data: bytes
    content_type: str
    extension: str
    suggested_name: str
    kind: AssetKind


@dataclass
class StoredObject:
    """Object written to the store along with its access URL."""

    key: str
    url: str
    size: int
    content_type: str
    filename: str
    uploaded_at: str


@dataclass
class RehostResult:
    """Outcome of rehosting one distinct locator."""

    reference: AssetReference
    status: RehostStatus
    url: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    object_key: Optional[str] = None
    occurrences: List[AssetReference] = field(default_factory=list)


@dataclass
class ProcessResult:
    """Final text of a processed document plus the per-asset report."""

    text: str
    original_text: str
    results: List[RehostResult]
    encoding: EncodingGuess

    @property
    def succeeded(self) -> List[RehostResult]:
        return [r for r in self.results if r.status is RehostStatus.SUCCESS]

    @property
    def skipped(self) -> List[RehostResult]:
        return [r for r in self.results if r.status is RehostStatus.SKIPPED]

    @property
    def failed(self) -> List[RehostResult]:
        return [r for r in self.results if r.status is RehostStatus.FAILED]

    @property
    def changed(self) -> bool:
        return self.text != self.original_text

    @property
    def image_urls(self) -> List[str]:
        return [r.url for r in self.succeeded if r.url]
