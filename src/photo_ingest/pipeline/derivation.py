"""Per-file media derivation: validate, derive variants, store, catalog.

One call to ``MediaPipeline.process_file`` turns one ``FileItem`` into
exactly one ``CatalogRecord`` or raises exactly one ``IngestError``
subclass. The record is only written after every variant is stored, and
variants that did reach the blob store are removed again if a later step
fails, so a file is never half-persisted.
"""

import asyncio
import base64
import logging
import re
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, TypeVar

from ..errors import (
    CatalogWriteFailure,
    EncodeTimeout,
    FileTooLarge,
    ImageTooLarge,
    UnsupportedFormat,
    UploadFailure,
    describe_error,
)
from ..models import IngestConfig
from ..queue.models import CatalogRecord, FileItem
from ..storage.backends import BlobStore, CatalogStore
from .imaging import ImageInfo, load_oriented, read_metadata, render_variant
from .variants import VARIANT_TYPES, VariantSet

logger = logging.getLogger(__name__)

T = TypeVar("T")


def sanitize_filename(name: str) -> str:
    """Lower-case, replace anything outside [a-z0-9.-] and collapse underscores."""
    cleaned = re.sub(r"[^a-z0-9.-]", "_", name.lower())
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    cleaned = cleaned.strip("_")
    return cleaned or "image"


def build_storage_base(owner_id: str, parent_id: str, filename: str) -> str:
    """Object key prefix shared by the three variants of one file.

    Layout: users/{owner}/albums/{album}/photos/{ms}-{token}-{stem}
    """
    stem = sanitize_filename(filename).rsplit(".", 1)[0] or "image"
    stamp = int(time.time() * 1000)
    token = uuid.uuid4().hex[:8]
    return f"users/{owner_id}/albums/{parent_id}/photos/{stamp}-{token}-{stem}"


def to_data_uri(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


class MediaPipeline:
    """Turns uploaded files into stored variants and catalog records.

    Args:
        config: Resolved configuration (limits, variants, storage timeouts)
        blob_store: Durable storage; unconfigured stores trigger fallback mode
        catalog: Catalog store receiving one record per file
        executor: Thread pool for Pillow work (created and owned if omitted)
    """

    def __init__(
        self,
        config: IngestConfig,
        blob_store: BlobStore,
        catalog: CatalogStore,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.config = config
        self.blob_store = blob_store
        self.catalog = catalog
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.concurrency.encode_workers or 2,
            thread_name_prefix="photo-encode",
        )
        self._allowed = {m.lower() for m in config.limits.allowed_mime_types}

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    async def _run_encode(self, fn: Callable[..., T], *args, label: str) -> T:
        """Run CPU-bound work on the encode pool with the encode timeout.

        On timeout the worker thread is left to finish on its own; the
        result is discarded.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, fn, *args)
        try:
            return await asyncio.wait_for(future, timeout=self.config.limits.encode_timeout_s)
        except asyncio.TimeoutError as e:
            raise EncodeTimeout(
                f"{label} exceeded {self.config.limits.encode_timeout_s:g}s"
            ) from e

    # --- Validation ---

    async def validate(self, item: FileItem) -> ImageInfo:
        """Check format, byte size, decodability and pixel count (in that order)."""
        mime = (item.mime_type or "").lower()
        if mime not in self._allowed:
            raise UnsupportedFormat(f"{item.mime_type or 'unknown'} is not an accepted image type")

        limit = self.config.limits.max_file_size_bytes
        if len(item.data) > limit:
            raise FileTooLarge(f"{len(item.data)} bytes exceeds limit of {limit} bytes")

        info = await self._run_encode(read_metadata, item.data, label="metadata decode")

        max_mp = self.config.limits.max_megapixels
        if info.width * info.height > max_mp * 1_000_000:
            raise ImageTooLarge(
                f"{info.width}x{info.height} ({info.megapixels:.1f}MP) exceeds {max_mp:g}MP"
            )
        return info

    # --- Derivation ---

    async def derive(self, data: bytes) -> VariantSet:
        """Auto-orient and render the three variants concurrently."""
        image = await self._run_encode(load_oriented, data, label="decode")
        roles = ("original", "medium", "thumbnail")
        encoded = await asyncio.gather(
            *(
                self._run_encode(render_variant, image, self.config.variant(role), label=f"{role} encode")
                for role in roles
            )
        )

        variants = {
            role: VARIANT_TYPES[role](
                width=enc.width,
                height=enc.height,
                byte_size=len(enc.data),
                content_type=enc.content_type,
                data=enc.data,
            )
            for role, enc in zip(roles, encoded)
        }
        return VariantSet(**variants)

    # --- Storage ---

    async def _put(self, variant, key: str) -> None:
        timeout = self.config.storage.upload_timeout_s
        try:
            url = await asyncio.wait_for(
                self.blob_store.put(variant.data, key, variant.content_type), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise UploadFailure(f"upload of {key} timed out after {timeout:g}s") from e
        except Exception as e:
            raise UploadFailure(f"upload of {key} failed: {describe_error(e)}") from e
        variant.storage_key = key
        variant.storage_url = url

    async def upload(self, variants: VariantSet, owner_id: str, parent_id: str, filename: str) -> None:
        """Upload all variants concurrently; roll back partial uploads on failure."""
        base = build_storage_base(owner_id, parent_id, filename)
        results = await asyncio.gather(
            *(self._put(v, f"{base}{v.key_suffix}.jpg") for v in variants.all()),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            await self.discard(variants)
            raise errors[0]

    async def discard(self, variants: VariantSet) -> None:
        """Best-effort removal of stored variants."""
        for variant in variants.all():
            if not variant.storage_key:
                continue
            try:
                await self.blob_store.delete(variant.storage_key)
            except Exception as e:
                logger.warning(f"Could not delete orphaned blob {variant.storage_key}: {e}")
            variant.storage_key = None
            variant.storage_url = None

    # --- Entry point ---

    async def process_file(self, item: FileItem, owner_id: str, parent_id: str) -> CatalogRecord:
        """Validate, derive, store and catalog one file.

        Raises:
            IngestError subclass describing the single failure of this file
        """
        await self.validate(item)
        variants = await self.derive(item.data)
        original = variants.original

        if self.blob_store.is_configured():
            await self.upload(variants, owner_id, parent_id, item.name)
            record = CatalogRecord(
                owner_id=owner_id,
                parent_id=parent_id,
                filename=item.name,
                mime_type=original.content_type,
                size=original.byte_size,
                width=original.width,
                height=original.height,
                storage_key=original.storage_key,
                storage_url=original.storage_url,
                medium_url=variants.medium.storage_url,
                thumbnail_url=variants.thumbnail.storage_url,
            )
        else:
            logger.warning(
                f"Blob storage not configured; embedding {item.name!r} as base64 (degraded mode)"
            )
            record = CatalogRecord(
                owner_id=owner_id,
                parent_id=parent_id,
                filename=item.name,
                mime_type=original.content_type,
                size=original.byte_size,
                width=original.width,
                height=original.height,
                storage_url=to_data_uri(original.data, original.content_type),
                thumbnail_url=to_data_uri(variants.thumbnail.data, variants.thumbnail.content_type),
                degraded=True,
            )

        try:
            return await self.catalog.create(record)
        except Exception as e:
            await self.discard(variants)
            raise CatalogWriteFailure(f"catalog insert for {item.name!r} failed: {describe_error(e)}") from e

    async def process_many(self, items: List[FileItem], owner_id: str, parent_id: str) -> list:
        """Process files concurrently, returning a record or exception per file."""
        return await asyncio.gather(
            *(self.process_file(item, owner_id, parent_id) for item in items),
            return_exceptions=True,
        )
