"""Unit tests for image preprocessing."""

import base64
import io

import pytest
from PIL import Image

from threat_modeler.processing import ImageProcessingError, fit_within, prepare_image


def _png(width: int, height: int, mode: str = "RGB") -> bytes:
    color = (0, 128, 255, 128) if mode == "RGBA" else (0, 128, 255)
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _decode(payload) -> Image.Image:
    return Image.open(io.BytesIO(base64.b64decode(payload.base64_data)))


class TestFitWithin:
    def test_small_image_unchanged(self):
        assert fit_within(800, 600, 1920, 1080) == (800, 600)

    def test_wide_image(self):
        assert fit_within(3840, 1080, 1920, 1080) == (1920, 540)

    def test_tall_image(self):
        assert fit_within(1000, 2160, 1920, 1080) == (500, 1080)


class TestPrepareImage:
    """Tests for prepare_image."""

    def test_reencoded_as_jpeg(self):
        payload = prepare_image(_png(100, 50), filename="arch.png")

        assert payload.mime_type == "image/jpeg"
        assert payload.filename == "arch.jpg"
        assert _decode(payload).format == "JPEG"

    def test_downscaled_preserving_aspect(self):
        payload = prepare_image(_png(4000, 2000))
        assert _decode(payload).size == (1920, 960)

    def test_transparency_flattened(self):
        payload = prepare_image(_png(10, 10, mode="RGBA"))
        assert _decode(payload).mode == "RGB"

    def test_deterministic(self):
        data = _png(300, 200)
        assert prepare_image(data).base64_data == prepare_image(data).base64_data

    def test_not_an_image(self):
        with pytest.raises(ImageProcessingError):
            prepare_image(b"definitely not an image", filename="notes.txt")
