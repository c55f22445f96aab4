import io

import pytest
from conftest import make_image_bytes
from PIL import Image

from photo_ingest.errors import CorruptImage
from photo_ingest.models import VariantSpec
from photo_ingest.pipeline.imaging import load_oriented, read_metadata, render_variant


class TestReadMetadata:
    def test_jpeg(self):
        info = read_metadata(make_image_bytes("JPEG", (320, 200)))
        assert (info.width, info.height, info.format) == (320, 200, "jpeg")
        assert info.megapixels == pytest.approx(0.064)

    def test_webp(self):
        info = read_metadata(make_image_bytes("WEBP", (50, 40)))
        assert info.format == "webp"

    def test_truncated_data(self):
        data = make_image_bytes("PNG", (100, 100))
        with pytest.raises(CorruptImage):
            read_metadata(data[:40])

    def test_empty(self):
        with pytest.raises(CorruptImage, match="empty"):
            read_metadata(b"")


class TestLoadOriented:
    def test_rgba_flattened_to_rgb(self):
        data = make_image_bytes("PNG", (10, 10), mode="RGBA", color=(0, 0, 0, 0))
        img = load_oriented(data)
        assert img.mode == "RGB"
        # Fully transparent pixels become white
        assert img.getpixel((5, 5)) == (255, 255, 255)

    def test_grayscale_converted(self):
        img = load_oriented(make_image_bytes("PNG", (10, 10), mode="L", color=128))
        assert img.mode == "RGB"

    def test_orientation_8_rotates(self):
        img = load_oriented(make_image_bytes("JPEG", (30, 20), orientation=8))
        assert img.size == (20, 30)


class TestRenderVariant:
    def test_fit_inside_keeps_aspect(self):
        image = Image.new("RGB", (1200, 400), (10, 20, 30))
        encoded = render_variant(image, VariantSpec(role="medium", max_width=600, max_height=600))

        assert (encoded.width, encoded.height) == (600, 200)
        assert encoded.content_type == "image/jpeg"
        assert Image.open(io.BytesIO(encoded.data)).format == "JPEG"

    def test_crop_exact_size(self):
        image = Image.new("RGB", (1200, 400), (10, 20, 30))
        spec = VariantSpec(role="thumbnail", max_width=300, max_height=300, crop=True)

        encoded = render_variant(image, spec)

        assert Image.open(io.BytesIO(encoded.data)).size == (300, 300)

    def test_source_image_untouched(self):
        image = Image.new("RGB", (800, 800))
        render_variant(image, VariantSpec(role="medium", max_width=100, max_height=100))
        assert image.size == (800, 800)

    def test_lower_quality_is_smaller(self):
        image = Image.effect_noise((400, 400), 64).convert("RGB")
        high = render_variant(image, VariantSpec(role="original", max_width=400, max_height=400, quality=95))
        low = render_variant(image, VariantSpec(role="original", max_width=400, max_height=400, quality=20))
        assert len(low.data) < len(high.data)
