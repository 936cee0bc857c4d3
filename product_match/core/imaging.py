"""Image helpers: input validation, content hashing, and bounding-box cropping (Pillow)."""

import hashlib
import io
import logging

from PIL import Image, UnidentifiedImageError

from product_match.ai.schema import BoundingBox
from product_match.core.errors import CropError, InvalidImageError

_log = logging.getLogger(__name__)

CROP_FORMAT = "PNG"


def image_hash(image_bytes: bytes) -> str:
    """Return the hex SHA-256 of the raw image bytes."""
    return hashlib.sha256(image_bytes).hexdigest()


def validate_image_bytes(image_bytes: bytes, max_bytes: int) -> None:
    """Raise InvalidImageError if the payload is empty or larger than max_bytes."""
    if not image_bytes:
        raise InvalidImageError("Image is empty.")
    if len(image_bytes) > max_bytes:
        raise InvalidImageError(
            f"Image is {len(image_bytes)} bytes; the maximum accepted size is {max_bytes} bytes."
        )


def pixel_box(box: BoundingBox, width: int, height: int) -> tuple[int, int, int, int]:
    """
    Convert a normalized box to (left, top, crop_width, crop_height) in pixels.

    x and y are the top-left corner. Values are clamped so the crop always lies inside the
    image and is at least 1x1: left in [0, w-1], top in [0, h-1], crop_width in [1, w-left],
    crop_height in [1, h-top].
    """
    left = min(max(int(box.x * width), 0), width - 1)
    top = min(max(int(box.y * height), 0), height - 1)
    crop_width = min(max(int(box.width * width), 1), width - left)
    crop_height = min(max(int(box.height * height), 1), height - top)
    return left, top, crop_width, crop_height


def crop_image(image_bytes: bytes, box: BoundingBox) -> bytes:
    """Crop the region described by box out of image_bytes; return it encoded as PNG."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            width, height = img.size
            left, top, crop_width, crop_height = pixel_box(box, width, height)
            _log.debug(
                "Cropping image: original=%sx%s, crop=%sx%s at (%s,%s)",
                width,
                height,
                crop_width,
                crop_height,
                left,
                top,
            )
            cropped = img.crop((left, top, left + crop_width, top + crop_height))
            if cropped.mode not in ("RGB", "RGBA", "L"):
                cropped = cropped.convert("RGB")
            out = io.BytesIO()
            cropped.save(out, format=CROP_FORMAT)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CropError(f"Could not crop image: {e}") from e
    data = out.getvalue()
    if not data:
        raise CropError("Crop produced an empty image.")
    return data
