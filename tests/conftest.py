import asyncio
import io
import uuid
from collections import defaultdict

import pytest
from PIL import Image

from photo_ingest.models import ConcurrencyConfig, IngestConfig
from photo_ingest.pipeline import MediaPipeline
from photo_ingest.queue.models import FileItem, JobOutcome, JobPayload
from photo_ingest.resources import HostInfo
from photo_ingest.storage.backends import BlobStore, CatalogStore

GB = 1024 ** 3


def make_image_bytes(fmt="JPEG", size=(800, 600), mode="RGB", color=(200, 120, 40), orientation=None):
    """Encode a solid-colour test image."""
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    kwargs = {}
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        kwargs["exif"] = exif
    img.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


def file_item(name="photo.jpg", data=None, mime_type="image/jpeg"):
    data = make_image_bytes() if data is None else data
    return FileItem(name=name, size=len(data), mime_type=mime_type, data=data)


def payload(parent_name="Summer", files=None, session_id="", owner_id="user-1"):
    return JobPayload(
        owner_id=owner_id,
        parent_name=parent_name,
        session_id=session_id,
        files=files or [],
    )


class MemoryCatalogStore(CatalogStore):
    """In-memory catalog with switchable failures."""

    def __init__(self):
        self.albums = {}
        self.records = []
        self.fail_parent = False
        self.fail_create = False

    async def create_parent(self, owner_id, name, batch_label=""):
        if self.fail_parent:
            raise ConnectionError("catalog unavailable")
        for album_id, key in self.albums.items():
            if key == (owner_id, name, batch_label):
                return album_id
        album_id = f"album-{uuid.uuid4().hex[:8]}"
        self.albums[album_id] = (owner_id, name, batch_label)
        return album_id

    async def create(self, record):
        if self.fail_create:
            raise ConnectionError("insert failed")
        stored = record.model_copy(update={"id": f"photo-{len(self.records) + 1}"})
        self.records.append(stored)
        return stored


class RecordingBlobStore(BlobStore):
    """Keeps objects in a dict; ``fail_on`` makes puts of matching keys fail."""

    def __init__(self, fail_on=None, delay=0.0):
        self.objects = {}
        self.deleted = []
        self.fail_on = fail_on
        self.delay = delay

    def is_configured(self):
        return True

    async def put(self, data, key, content_type):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on and self.fail_on in key:
            raise ConnectionError(f"refused {key}")
        self.objects[key] = (data, content_type)
        return f"https://blobs.test/{key}"

    async def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)


class StubProcessor:
    """Scripted stand-in for JobProcessor used by scheduler tests.

    ``script`` maps a parent name to a list of per-attempt results: an
    exception to raise or None to succeed.
    """

    def __init__(self, delay=0.01, script=None):
        self.delay = delay
        self.script = script or {}
        self.active = 0
        self.peak = 0
        self.order = []
        self.calls = defaultdict(int)

    async def run(self, job, should_cancel=lambda: False):
        name = job.payload.parent_name
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.order.append(name)
        try:
            await asyncio.sleep(self.delay)
            attempt = self.calls[name]
            self.calls[name] += 1
            plan = self.script.get(name, [])
            if attempt < len(plan) and plan[attempt] is not None:
                raise plan[attempt]
            return JobOutcome(parent_id=f"album-{name}", cancelled=should_cancel())
        finally:
            self.active -= 1


@pytest.fixture
def host():
    return HostInfo(cpu_count=8, total_memory_bytes=16 * GB, free_memory_bytes=8 * GB)


@pytest.fixture
def config():
    return IngestConfig(
        concurrency=ConcurrencyConfig(
            job_concurrency=2,
            file_concurrency=3,
            encode_workers=2,
            memory_backoff_s=0.0,
            memory_backoff_max_waits=0,
        )
    )


@pytest.fixture
def catalog():
    return MemoryCatalogStore()


@pytest.fixture
def blob_store():
    return RecordingBlobStore()


@pytest.fixture
def make_pipeline(config, catalog):
    """Factory for pipelines; all are closed at teardown."""
    created = []

    def factory(store, cfg=None, cat=None):
        pipeline = MediaPipeline(cfg or config, store, cat or catalog)
        created.append(pipeline)
        return pipeline

    yield factory
    for pipeline in created:
        pipeline.close()


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG", (800, 600))


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG", (640, 480))
