"""Pillow helpers for decoding and re-encoding images.

All functions here are synchronous and CPU-bound; the pipeline runs them on
its encode thread pool.
"""

import io
from dataclasses import dataclass

from PIL import Image, ImageOps

from ..errors import CorruptImage, ImageTooLarge
from ..models import VariantSpec

OUTPUT_FORMAT = "JPEG"
OUTPUT_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class ImageInfo:
    width: int
    height: int
    format: str

    @property
    def megapixels(self) -> float:
        return self.width * self.height / 1_000_000


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    width: int
    height: int
    content_type: str = OUTPUT_CONTENT_TYPE


def read_metadata(data: bytes) -> ImageInfo:
    """Decode header metadata and verify the stream.

    Raises:
        CorruptImage: empty, unidentifiable or damaged data
        ImageTooLarge: Pillow's decompression bomb guard tripped
    """
    if not data:
        raise CorruptImage("empty file")
    try:
        with Image.open(io.BytesIO(data)) as img:
            info = ImageInfo(width=img.width, height=img.height, format=(img.format or "unknown").lower())
            img.verify()
    except Image.DecompressionBombError as e:
        raise ImageTooLarge(str(e)) from e
    except Exception as e:  # any decoder failure on user bytes
        raise CorruptImage(f"cannot decode image: {e}") from e
    if info.width <= 0 or info.height <= 0:
        raise CorruptImage(f"invalid dimensions {info.width}x{info.height}")
    return info


def load_oriented(data: bytes) -> Image.Image:
    """Fully decode, apply EXIF orientation and normalise to RGB."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            oriented = ImageOps.exif_transpose(img)
            if oriented is None:  # older Pillow returns None for in-place
                oriented = img
            return _to_rgb(oriented)
    except Image.DecompressionBombError as e:
        raise ImageTooLarge(str(e)) from e
    except Exception as e:
        raise CorruptImage(f"cannot decode image: {e}") from e


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten transparency onto white; JPEG has no alpha channel."""
    if img.mode == "RGB":
        return img.copy()
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def render_variant(image: Image.Image, spec: VariantSpec) -> EncodedImage:
    """Resize a decoded image to a variant spec and encode it as JPEG.

    Fit-inside variants never upscale; crop variants are centre-cropped to
    exactly ``max_width`` x ``max_height``.
    """
    size = (spec.max_width, spec.max_height)
    if spec.crop:
        out = ImageOps.fit(image, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    else:
        out = image.copy()
        out.thumbnail(size, Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    out.save(buffer, format=OUTPUT_FORMAT, quality=spec.quality, optimize=True)
    return EncodedImage(data=buffer.getvalue(), width=out.width, height=out.height)
