import datetime as dt

import pytest
from minio.error import S3Error
from urllib3.exceptions import MaxRetryError

from conftest import FIXED_NOW, PNG_BYTES, MemoryObjectStore
from mdx_rehost.config import StorageConfig
from mdx_rehost.errors import StorageError, StorageWriteError, UnsupportedFileError
from mdx_rehost.models import AssetKind, MaterializedAsset
from mdx_rehost.storage import MARKDOWN_CONTENT_TYPE, AssetStore, MinioObjectStore, build_object_key


class FakeObject:
    def __init__(self, data):
        self._data = data
        self.released = False

    def read(self):
        return self._data

    def close(self):
        pass

    def release_conn(self):
        self.released = True


class FakeMinio:
    def __init__(self):
        self.buckets = set()
        self.objects = {}
        self.fail_puts = False
        self.presign_calls = []

    def bucket_exists(self, bucket_name):
        return bucket_name in self.buckets

    def make_bucket(self, bucket_name):
        self.buckets.add(bucket_name)

    def put_object(self, bucket_name, object_name, data, length, content_type):
        if self.fail_puts:
            raise MaxRetryError(None, f"/{bucket_name}/{object_name}")
        payload = data.read()
        assert len(payload) == length
        self.objects[(bucket_name, object_name)] = (payload, content_type)

    def get_object(self, bucket_name, object_name):
        return FakeObject(self.objects[(bucket_name, object_name)][0])

    def stat_object(self, bucket_name, object_name):
        if (bucket_name, object_name) not in self.objects:
            raise S3Error(
                code="NoSuchKey",
                message="Object does not exist",
                resource=f"/{bucket_name}/{object_name}",
                request_id="request-id",
                host_id="host-id",
                response=None,
            )
        return object()

    def remove_object(self, bucket_name, object_name):
        self.objects.pop((bucket_name, object_name), None)

    def presigned_get_object(self, bucket_name, object_name, expires):
        self.presign_calls.append(expires)
        return f"https://minio.example.com/{bucket_name}/{object_name}?X-Amz-Signature=abc"


def _asset(name="abc123", extension="png", kind=AssetKind.REMOTE_URL):
    return MaterializedAsset(
        data=PNG_BYTES,
        content_type="image/png",
        extension=extension,
        suggested_name=name,
        kind=kind,
    )


def test_build_object_key():
    assert build_object_key("20240202", "images", "abc", "png") == "20240202/images/abc.png"
    assert build_object_key("20240202", "others", "abc", "") == "20240202/others/abc"


def test_store_uses_date_partition_and_category(asset_store, backend):
    stored = asset_store.store(_asset())
    assert stored.key == "20240202/images/abc123.png"
    assert stored.url == "https://minio.example.com/notes/20240202/images/abc123.png"
    assert stored.size == len(PNG_BYTES)
    assert backend.objects[stored.key] == (PNG_BYTES, "image/png")


def test_named_assets_overwrite_same_key(asset_store, backend):
    first = asset_store.store(_asset(name="Image-1", kind=AssetKind.NAMED_REMOTE_URL))
    second = asset_store.store(_asset(name="Image-1", kind=AssetKind.NAMED_REMOTE_URL))
    assert first.key == second.key == "20240202/images/Image-1.png"
    assert len(backend.objects) == 1


def test_store_failure_surfaces_as_write_error(asset_store, backend):
    backend.fail_puts = True
    with pytest.raises(StorageWriteError):
        asset_store.store(_asset())


def test_upload_validates_type_and_size(backend):
    store = AssetStore(backend, clock=lambda: FIXED_NOW, max_upload_bytes=16)
    with pytest.raises(UnsupportedFileError):
        store.upload(b"data", "script.exe")
    with pytest.raises(UnsupportedFileError):
        store.upload(b"data", "notes.md", category="images")
    with pytest.raises(UnsupportedFileError):
        store.upload(b"", "notes.md")
    with pytest.raises(UnsupportedFileError):
        store.upload(b"x" * 17, "notes.md")


def test_upload_markdown_document(asset_store, backend):
    stored = asset_store.upload(b"# hi\n", "notes.md")
    assert stored.key.startswith("20240202/documents/")
    assert stored.key.endswith(".md")
    assert stored.filename == "notes.md"
    assert backend.objects[stored.key][1] == MARKDOWN_CONTENT_TYPE


def test_minio_store_bootstraps_bucket_and_builds_public_urls():
    client = FakeMinio()
    store = MinioObjectStore(StorageConfig(endpoint="http://minio.local:9000", bucket="notes"), client=client)
    url = store.put("20240202/images/a b.png", PNG_BYTES, "image/png")
    assert "notes" in client.buckets
    assert url == "http://minio.local:9000/notes/20240202/images/a%20b.png"
    assert store.url_prefix == "http://minio.local:9000"
    assert store.exists("20240202/images/a b.png")
    assert store.get("20240202/images/a b.png") == PNG_BYTES


def test_minio_store_presigned_urls():
    client = FakeMinio()
    config = StorageConfig(endpoint="https://minio.example.com", bucket="notes", presigned_expiry=600)
    store = MinioObjectStore(config, client=client)
    url = store.put("k.png", PNG_BYTES, "image/png")
    assert url.startswith(store.url_prefix + "/")
    assert client.presign_calls == [dt.timedelta(seconds=600)]


def test_minio_store_delete_and_missing_objects():
    client = FakeMinio()
    store = MinioObjectStore(StorageConfig(endpoint="http://minio.local:9000", bucket="notes"), client=client)
    store.put("k.png", PNG_BYTES, "image/png")
    assert store.delete("k.png") is True
    assert store.exists("k.png") is False
    assert store.delete("k.png") is False


def test_minio_store_wraps_transport_errors():
    client = FakeMinio()
    client.fail_puts = True
    store = MinioObjectStore(StorageConfig(endpoint="http://minio.local:9000", bucket="notes"), client=client)
    with pytest.raises(StorageWriteError):
        store.put("k.png", PNG_BYTES, "image/png")


def test_storage_config_from_env(monkeypatch):
    monkeypatch.setenv("MINIO_ENDPOINT", "https://s3.example.com")
    monkeypatch.setenv("MINIO_BUCKET", "assets")
    monkeypatch.setenv("MINIO_PRESIGNED_EXPIRY", "3600")
    config = StorageConfig.from_env()
    assert config.secure is True
    assert config.host == "s3.example.com"
    assert config.bucket == "assets"
    assert config.presigned_expiry == 3600


def test_storage_config_requires_endpoint(monkeypatch):
    monkeypatch.delenv("MINIO_ENDPOINT", raising=False)
    with pytest.raises(RuntimeError):
        StorageConfig.from_env()


def test_memory_store_get_missing_raises():
    with pytest.raises(StorageError):
        MemoryObjectStore().get("nope")
