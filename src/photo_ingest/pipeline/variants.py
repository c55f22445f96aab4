"""Derived media variants, one model per role.

Variants exist only while a file is in the pipeline; they are never
persisted themselves, only referenced from the catalog record.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class _VariantBase(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    byte_size: int = Field(ge=0)
    content_type: str = "image/jpeg"
    data: bytes = Field(repr=False)
    storage_key: Optional[str] = None
    storage_url: Optional[str] = None

    @property
    def stored(self) -> bool:
        return self.storage_url is not None


class OriginalVariant(_VariantBase):
    role: Literal["original"] = "original"
    key_suffix: Literal[""] = ""


class MediumVariant(_VariantBase):
    role: Literal["medium"] = "medium"
    key_suffix: Literal["-medium"] = "-medium"


class ThumbnailVariant(_VariantBase):
    role: Literal["thumbnail"] = "thumbnail"
    key_suffix: Literal["-thumb"] = "-thumb"


MediaVariant = Union[OriginalVariant, MediumVariant, ThumbnailVariant]

VARIANT_TYPES = {
    "original": OriginalVariant,
    "medium": MediumVariant,
    "thumbnail": ThumbnailVariant,
}


class VariantSet(BaseModel):
    """The three variants of one input image."""

    original: OriginalVariant
    medium: MediumVariant
    thumbnail: ThumbnailVariant

    def all(self) -> list:
        return [self.original, self.medium, self.thumbnail]
