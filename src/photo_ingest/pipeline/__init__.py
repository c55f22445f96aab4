"""Media derivation pipeline and job processor."""

from .derivation import MediaPipeline, build_storage_base, sanitize_filename
from .processor import JobProcessor
from .variants import MediumVariant, OriginalVariant, ThumbnailVariant, VariantSet

__all__ = [
    "MediaPipeline",
    "JobProcessor",
    "build_storage_base",
    "sanitize_filename",
    "OriginalVariant",
    "MediumVariant",
    "ThumbnailVariant",
    "VariantSet",
]
