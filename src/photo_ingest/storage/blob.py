"""Blob store backends.

- ``NullBlobStore``: nothing configured, pipeline falls back to data URIs
- ``LocalBlobStore``: files under a directory, served from a public base URL
- ``S3BlobStore``: AWS S3 (or compatible) through boto3
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig

from ..models import StorageConfig
from .backends import BlobStore

logger = logging.getLogger(__name__)


class NullBlobStore(BlobStore):
    """Unconfigured storage."""

    def is_configured(self) -> bool:
        return False

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        raise RuntimeError("blob storage is not configured")

    async def delete(self, key: str) -> None:
        return None


class LocalBlobStore(BlobStore):
    """Stores objects on the local filesystem.

    Args:
        root: Directory that holds objects (created on demand)
        public_base_url: URL prefix the directory is served from
    """

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def is_configured(self) -> bool:
        return True

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"key escapes storage root: {key}")
        return path

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        path = self._path_for(key)
        await asyncio.to_thread(self._write, path, data)
        return f"{self.public_base_url}/{key}"

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)


class S3BlobStore(BlobStore):
    """AWS S3 backend.

    boto3 clients are blocking, so calls run in worker threads. Credentials
    come from the usual boto3 chain (env vars, profile, instance role).

    Cancelling an awaiting coroutine does not stop a put already running in
    its thread, so the client gets its own connect and read timeouts (and a
    single attempt) from ``request_timeout_s``. Keep it below the pipeline's
    upload timeout so a stalled put gives up instead of landing after the
    rollback delete.
    """

    def __init__(
        self,
        bucket: Optional[str],
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        client=None,
        request_timeout_s: Optional[float] = None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.request_timeout_s = request_timeout_s
        self._client = client

    @property
    def client(self):
        if self._client is None:
            boto_config = None
            if self.request_timeout_s is not None:
                boto_config = BotoConfig(
                    connect_timeout=self.request_timeout_s,
                    read_timeout=self.request_timeout_s,
                    retries={"max_attempts": 1},
                )
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=boto_config,
            )
        return self._client

    def is_configured(self) -> bool:
        return bool(self.bucket)

    def url_for(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        return self.url_for(key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)


def create_blob_store(config: StorageConfig) -> BlobStore:
    """Build the blob store selected by config."""
    if config.backend == "s3":
        store = S3BlobStore(
            bucket=config.s3_bucket,
            region=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
            # connect plus read stays under the upload timeout
            request_timeout_s=config.upload_timeout_s / 2,
        )
        if not store.is_configured():
            logger.warning("S3 backend selected but no bucket set; using base64 fallback")
            return NullBlobStore()
        return store
    if config.backend == "local":
        return LocalBlobStore(config.local_root, config.public_base_url)
    return NullBlobStore()
