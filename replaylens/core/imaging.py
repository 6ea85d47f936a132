"""Screenshot encoding and pixel-level image similarity."""

from __future__ import annotations

import base64
import io

import structlog
from PIL import Image, UnidentifiedImageError
from pixelmatch.contrib.PIL import pixelmatch

logger = structlog.get_logger(__name__)

_PNG_PREFIX = "data:image/png;base64,"
_MAX_SIDE = 128  # comparisons run on thumbnails


def to_data_url(image_bytes: bytes) -> str:
    return _PNG_PREFIX + base64.b64encode(image_bytes).decode("ascii")


def from_data_url(data_url: str) -> bytes:
    """Decode a ``data:`` URL (or bare base64) to raw bytes."""
    _, _, payload = data_url.partition("base64,")
    return base64.b64decode(payload or data_url)


def compare_images(image_a: bytes, image_b: bytes, *, threshold: float = 0.1) -> float:
    """
    Similarity in [0, 1] between two encoded images.

    Both images are resized to the smaller common size, capped at
    ``_MAX_SIDE`` pixels per side, before a pixelmatch
    comparison; ``threshold`` is pixelmatch's per-pixel color tolerance.
    Undecodable input scores 0.
    """
    try:
        img_a = Image.open(io.BytesIO(image_a)).convert("RGBA")
        img_b = Image.open(io.BytesIO(image_b)).convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("image decode failed", error=str(exc))
        return 0.0

    width = min(img_a.width, img_b.width)
    height = min(img_a.height, img_b.height)
    if width <= 0 or height <= 0:
        return 0.0
    scale = min(1.0, _MAX_SIDE / max(width, height))
    width, height = max(1, int(width * scale)), max(1, int(height * scale))
    if img_a.size != (width, height):
        img_a = img_a.resize((width, height))
    if img_b.size != (width, height):
        img_b = img_b.resize((width, height))

    mismatched = pixelmatch(img_a, img_b, threshold=threshold, includeAA=True)
    return 1.0 - mismatched / float(width * height)
