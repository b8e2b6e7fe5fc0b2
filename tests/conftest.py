"""Shared fakes for the rehosting tests."""

from __future__ import annotations

import datetime as dt
import threading
from typing import Dict, List, Optional, Tuple, Union

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from mdx_rehost.config import RehostConfig
from mdx_rehost.errors import StorageError, StorageWriteError
from mdx_rehost.images import AssetMaterializer
from mdx_rehost.pipeline import MarkdownRehoster
from mdx_rehost.storage import AssetStore

STORE_PREFIX = "https://minio.example.com"
FIXED_NOW = dt.datetime(2024, 2, 2, 9, 56, 14, tzinfo=dt.timezone.utc)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeResponse:
    def __init__(self, status_code: int, body: bytes, headers: Optional[Dict[str, str]] = None) -> None:
        self.status_code = status_code
        self._body = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        self.closed = True

    def iter_content(self, chunk_size: int = 1):
        for offset in range(0, len(self._body), chunk_size):
            yield self._body[offset : offset + chunk_size]


Route = Union[BaseException, Tuple[int, bytes, Dict[str, str]]]


class FakeSession:
    """Scripted stand-in for ``requests.Session``."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = routes or {}
        self.calls: List[Dict[str, object]] = []
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append({"url": url, **kwargs})
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"connection refused: {url}")
        if isinstance(route, BaseException):
            raise route
        status, body, headers = route
        return FakeResponse(status, body, headers)

    def urls(self) -> List[str]:
        return [call["url"] for call in self.calls]


class MemoryObjectStore:
    """In-memory ``ObjectStore`` used in place of MinIO."""

    def __init__(self, url_prefix: str = STORE_PREFIX, bucket: str = "notes") -> None:
        self._url_prefix = url_prefix
        self.bucket = bucket
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.fail_puts = False
        self.puts: List[str] = []
        self._lock = threading.Lock()

    @property
    def url_prefix(self) -> str:
        return self._url_prefix

    def ensure_bucket(self) -> None:
        return None

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail_puts:
            raise StorageWriteError(f"quota exceeded for {key}")
        with self._lock:
            self.objects[key] = (data, content_type)
            self.puts.append(key)
        return self.url(key)

    def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageError(f"missing {key}")
        return self.objects[key][0]

    def exists(self, key: str) -> bool:
        return key in self.objects

    def delete(self, key: str) -> bool:
        return self.objects.pop(key, None) is not None

    def url(self, key: str) -> str:
        return f"{self._url_prefix}/{self.bucket}/{key}"


@pytest.fixture
def backend() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def config() -> RehostConfig:
    return RehostConfig(max_workers=3)


@pytest.fixture
def asset_store(backend: MemoryObjectStore) -> AssetStore:
    return AssetStore(backend, clock=lambda: FIXED_NOW)


@pytest.fixture
def rehoster(asset_store: AssetStore, config: RehostConfig, session: FakeSession) -> MarkdownRehoster:
    materializer = AssetMaterializer(config, session=session)
    return MarkdownRehoster(asset_store, config, materializer=materializer)
