"""Blob and catalog storage backends."""

from .backends import BlobStore, CatalogStore
from .blob import LocalBlobStore, NullBlobStore, S3BlobStore, create_blob_store
from .catalog import SQLCatalogStore, init_db

__all__ = [
    "BlobStore",
    "CatalogStore",
    "LocalBlobStore",
    "NullBlobStore",
    "S3BlobStore",
    "create_blob_store",
    "SQLCatalogStore",
    "init_db",
]
