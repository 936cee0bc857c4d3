"""Tests for image validation, hashing and bounding-box cropping."""

import io

import pytest
from PIL import Image

from product_match.ai.schema import BoundingBox
from product_match.core.errors import CropError, InvalidImageError
from product_match.core.imaging import crop_image, image_hash, pixel_box, validate_image_bytes
from tests.conftest import png_bytes


@pytest.mark.fast
def test_image_hash_is_sha256_hex():
    """Hash is the 64-char hex SHA-256 of the raw bytes."""
    assert image_hash(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


@pytest.mark.fast
def test_validate_image_bytes():
    """Empty and oversized payloads are rejected; anything else passes."""
    with pytest.raises(InvalidImageError, match="empty"):
        validate_image_bytes(b"", 100)
    with pytest.raises(InvalidImageError, match="101 bytes"):
        validate_image_bytes(b"x" * 101, 100)
    validate_image_bytes(b"x" * 100, 100)


@pytest.mark.fast
def test_pixel_box_converts_and_clamps():
    """Normalized boxes map to pixels and always stay inside the image."""
    assert pixel_box(BoundingBox(x=0.1, y=0.2, width=0.5, height=0.5), 100, 80) == (10, 16, 50, 40)
    # right edge: width is cut to what remains
    assert pixel_box(BoundingBox(x=0.9, y=0.0, width=0.5, height=1.0), 100, 80) == (90, 0, 10, 80)
    # degenerate box is at least 1x1 and starts inside the image
    assert pixel_box(BoundingBox(x=1.0, y=1.0, width=0.0, height=0.0), 100, 80) == (99, 79, 1, 1)


@pytest.mark.fast
def test_crop_image_returns_png_of_expected_size():
    """The crop is a PNG with the pixel size of the box."""
    data = crop_image(png_bytes(100, 80), BoundingBox(x=0.5, y=0.5, width=0.25, height=0.5))
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.size == (25, 40)


@pytest.mark.fast
def test_crop_image_converts_palette_images():
    """Non-RGB modes are converted before encoding."""
    buf = io.BytesIO()
    Image.new("P", (20, 20)).save(buf, format="GIF")
    data = crop_image(buf.getvalue(), BoundingBox(x=0.0, y=0.0, width=0.5, height=0.5))
    with Image.open(io.BytesIO(data)) as img:
        assert img.mode == "RGB"
        assert img.size == (10, 10)


@pytest.mark.fast
def test_crop_image_rejects_undecodable_bytes():
    """Bytes that are not an image raise CropError."""
    with pytest.raises(CropError, match="Could not crop image"):
        crop_image(b"definitely not an image", BoundingBox(x=0.0, y=0.0, width=1.0, height=1.0))


@pytest.mark.fast
def test_bounding_box_rejects_out_of_range():
    """Coordinates outside [0, 1] are invalid."""
    with pytest.raises(ValueError):
        BoundingBox(x=1.5, y=0.0, width=0.1, height=0.1)
