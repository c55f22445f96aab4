"""Tests for blob store backends and backend selection."""

import pytest

from photo_ingest.models import StorageConfig
from photo_ingest.storage import LocalBlobStore, NullBlobStore, S3BlobStore, create_blob_store


class FakeS3Client:
    def __init__(self):
        self.puts = []
        self.deletes = []

    def put_object(self, **kwargs):
        self.puts.append(kwargs)

    def delete_object(self, **kwargs):
        self.deletes.append(kwargs)


class TestSelection:
    def test_default_is_fallback(self):
        assert isinstance(create_blob_store(StorageConfig()), NullBlobStore)

    def test_s3_without_bucket_falls_back(self):
        store = create_blob_store(StorageConfig(backend="s3"))
        assert isinstance(store, NullBlobStore)
        assert not store.is_configured()

    def test_local_backend(self, tmp_path):
        store = create_blob_store(StorageConfig(backend="local", local_root=str(tmp_path)))
        assert isinstance(store, LocalBlobStore)

    def test_s3_request_timeout_below_upload_timeout(self):
        store = create_blob_store(
            StorageConfig(backend="s3", s3_bucket="albums", upload_timeout_s=20.0)
        )

        assert isinstance(store, S3BlobStore)
        assert store.request_timeout_s == 10.0
        client_config = store.client.meta.config
        assert client_config.connect_timeout == 10.0
        assert client_config.read_timeout == 10.0
        assert client_config.retries["max_attempts"] == 1


class TestLocalBlobStore:
    async def test_put_and_delete(self, tmp_path):
        store = LocalBlobStore(str(tmp_path), "http://media.test/")

        url = await store.put(b"abc", "users/u1/a.jpg", "image/jpeg")

        assert url == "http://media.test/users/u1/a.jpg"
        assert (tmp_path / "users" / "u1" / "a.jpg").read_bytes() == b"abc"

        await store.delete("users/u1/a.jpg")
        assert not (tmp_path / "users" / "u1" / "a.jpg").exists()

    async def test_delete_missing_is_quiet(self, tmp_path):
        await LocalBlobStore(str(tmp_path), "http://media.test").delete("nope.jpg")

    async def test_key_cannot_escape_root(self, tmp_path):
        store = LocalBlobStore(str(tmp_path / "root"), "http://media.test")

        with pytest.raises(ValueError):
            await store.put(b"x", "../outside.jpg", "image/jpeg")


class TestS3BlobStore:
    async def test_put_and_delete_use_client(self):
        client = FakeS3Client()
        store = S3BlobStore("albums", region="eu-west-1", client=client)

        url = await store.put(b"abc", "users/u1/a.jpg", "image/jpeg")
        await store.delete("users/u1/a.jpg")

        assert url == "https://albums.s3.eu-west-1.amazonaws.com/users/u1/a.jpg"
        assert client.puts == [
            {"Bucket": "albums", "Key": "users/u1/a.jpg", "Body": b"abc", "ContentType": "image/jpeg"}
        ]
        assert client.deletes == [{"Bucket": "albums", "Key": "users/u1/a.jpg"}]

    def test_endpoint_url_style(self):
        store = S3BlobStore("albums", endpoint_url="http://minio:9000/", client=FakeS3Client())
        assert store.url_for("k.jpg") == "http://minio:9000/albums/k.jpg"
