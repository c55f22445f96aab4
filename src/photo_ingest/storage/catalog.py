"""SQL catalog store built on ``databases`` and SQLAlchemy Core."""

import logging
import uuid

from databases import Database
from sqlalchemy import create_engine, insert, select

from ..queue.models import CatalogRecord
from .backends import CatalogStore
from .db_models import Album, Base, Photo

logger = logging.getLogger(__name__)


def init_db(database_url: str) -> None:
    """Create catalog tables if missing (synchronous engine)."""
    engine = create_engine(database_url)
    Base.metadata.create_all(engine)
    engine.dispose()


class SQLCatalogStore(CatalogStore):
    """Catalog backed by the ``Album`` and ``Photo`` tables.

    The caller owns the ``Database`` connection lifecycle.
    """

    def __init__(self, database: Database):
        self.database = database

    async def create_parent(self, owner_id: str, name: str, batch_label: str = "") -> str:
        query = select(Album).where(
            Album.ownerId == owner_id, Album.name == name, Album.batchLabel == batch_label
        )
        existing = await self.database.fetch_one(query)
        if existing:
            logger.debug(f"Resolved existing album {existing.id} for {name!r}")
            return existing.id

        album_id = str(uuid.uuid4())
        await self.database.execute(
            insert(Album).values(id=album_id, ownerId=owner_id, name=name, batchLabel=batch_label)
        )
        logger.info(f"Created album {album_id} ({name!r}, label={batch_label!r})")
        return album_id

    async def create(self, record: CatalogRecord) -> CatalogRecord:
        record_id = record.id or str(uuid.uuid4())
        await self.database.execute(
            insert(Photo).values(
                id=record_id,
                ownerId=record.owner_id,
                albumId=record.parent_id,
                filename=record.filename,
                mimeType=record.mime_type,
                size=record.size,
                width=record.width,
                height=record.height,
                storageKey=record.storage_key,
                storageUrl=record.storage_url,
                mediumUrl=record.medium_url,
                thumbnailUrl=record.thumbnail_url,
                degraded=record.degraded,
                createdAt=record.created_at,
            )
        )
        return record.model_copy(update={"id": record_id})

    async def list_photos(self, album_id: str) -> list:
        query = select(Photo).where(Photo.albumId == album_id).order_by(Photo.createdAt)
        return await self.database.fetch_all(query)
