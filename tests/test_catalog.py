"""SQL catalog store against a temporary SQLite database."""

import pytest
from databases import Database

from photo_ingest.queue.models import CatalogRecord
from photo_ingest.storage import SQLCatalogStore, init_db


@pytest.fixture
async def store(tmp_path):
    url = f"sqlite:///{tmp_path / 'catalog.db'}"
    init_db(url)
    database = Database(url)
    await database.connect()
    yield SQLCatalogStore(database)
    await database.disconnect()


def record(parent_id, **overrides):
    fields = dict(
        owner_id="user-1",
        parent_id=parent_id,
        filename="a.jpg",
        mime_type="image/jpeg",
        size=1234,
        width=800,
        height=600,
        storage_key="users/user-1/albums/x/photos/1-abc-a.jpg",
        storage_url="https://cdn.test/a.jpg",
        medium_url="https://cdn.test/a-medium.jpg",
        thumbnail_url="https://cdn.test/a-thumb.jpg",
    )
    fields.update(overrides)
    return CatalogRecord(**fields)


async def test_create_parent_resolves_existing(store):
    first = await store.create_parent("user-1", "Wedding", "2024")
    again = await store.create_parent("user-1", "Wedding", "2024")
    other = await store.create_parent("user-1", "Wedding", "2025")

    assert first == again
    assert other != first


async def test_create_assigns_id_and_persists(store):
    album_id = await store.create_parent("user-1", "Trip")

    saved = await store.create(record(album_id))
    rows = await store.list_photos(album_id)

    assert saved.id is not None
    assert len(rows) == 1
    assert rows[0].id == saved.id
    assert rows[0].mediumUrl == "https://cdn.test/a-medium.jpg"
    assert not rows[0].degraded


async def test_degraded_record_stores_data_uri(store):
    album_id = await store.create_parent("user-1", "Offline")
    data_uri = "data:image/jpeg;base64," + "A" * 5000

    await store.create(record(album_id, storage_key=None, storage_url=data_uri, degraded=True))
    rows = await store.list_photos(album_id)

    assert rows[0].storageUrl == data_uri
    assert rows[0].storageKey is None
