from __future__ import annotations

"""Abstract base classes for blob storage and the media catalog.

The pipeline only depends on these interfaces. Concrete backends live in
``blob.py`` (S3, local directory, unconfigured) and ``catalog.py``
(SQL via ``databases``).
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..queue.models import CatalogRecord


class BlobStore(ABC):
    """Durable object storage for binary variants."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if uploads are possible.

        Implementation notes:
        - False switches the pipeline into base64 fallback mode
        - Must not perform network I/O
        """
        pass

    @abstractmethod
    async def put(self, data: bytes, key: str, content_type: str) -> str:
        """Store bytes under key and return a public http(s) URL.

        Args:
            data: Encoded image bytes
            key: Object key (slash-separated)
            content_type: MIME type stored with the object

        Implementation notes:
        - Overwrites an existing object with the same key
        - Raise any exception on failure; the pipeline wraps it in UploadFailure
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object (missing keys are not an error)."""
        pass


class CatalogStore(ABC):
    """Durable records describing persisted media."""

    @abstractmethod
    async def create_parent(self, owner_id: str, name: str, batch_label: str = "") -> str:
        """Create (or resolve) the album grouping a batch and return its id.

        Implementation notes:
        - Called once per job attempt, before any file is processed
        - Resolving an existing album with the same owner/name/label is allowed
        """
        pass

    @abstractmethod
    async def create(self, record: "CatalogRecord") -> "CatalogRecord":
        """Insert one record and return it with its assigned id.

        Implementation notes:
        - Called only after every variant of the file is stored
        - Must be all-or-nothing for a single record
        """
        pass
