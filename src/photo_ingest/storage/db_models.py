from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Album(Base):
    __tablename__ = "Album"
    id = Column(String, primary_key=True)
    ownerId = Column(String, index=True)  # noqa: N815
    name = Column(String)
    batchLabel = Column(String, default="")  # noqa: N815
    createdAt = Column(DateTime, default=datetime.utcnow)  # noqa: N815


class Photo(Base):
    __tablename__ = "Photo"
    id = Column(String, primary_key=True)
    ownerId = Column(String, index=True)  # noqa: N815
    albumId = Column(String, ForeignKey("Album.id"), index=True)  # noqa: N815
    filename = Column(String)
    mimeType = Column(String)  # noqa: N815
    size = Column(Integer)
    width = Column(Integer)
    height = Column(Integer)
    storageKey = Column(String, nullable=True)  # noqa: N815
    storageUrl = Column(Text)  # noqa: N815  (data URIs in fallback mode)
    mediumUrl = Column(Text, nullable=True)  # noqa: N815
    thumbnailUrl = Column(Text, nullable=True)  # noqa: N815
    degraded = Column(Boolean, default=False)
    createdAt = Column(DateTime, default=datetime.utcnow)  # noqa: N815
