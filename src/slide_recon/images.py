"""
Image helpers for slide reconstruction.

Provides:
- Decoding/encoding between encoded bitmaps and numpy arrays
- MIME type detection
- Eligibility check (genuine raster vs. filler placeholder)
"""

import io
import logging
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


# Smallest payload the vision service accepts as an image
MIN_IMAGE_BYTES = 75

DEFAULT_MIME_TYPE = "image/png"


# ============================================================================
# Encoding / Decoding
# ============================================================================

def decode_image(data: bytes) -> Optional[np.ndarray]:
    """
    Decode an encoded bitmap into a BGR numpy array.

    Returns None if the payload is not a decodable raster.
    """
    import cv2

    if not data:
        return None
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None or image.size == 0:
        return None
    return image


def encode_png(image: np.ndarray) -> bytes:
    """Encode a numpy image (BGR or grayscale) as PNG bytes."""
    import cv2

    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("Could not encode image as PNG")
    return buffer.tobytes()


def pil_to_png(pil_image) -> bytes:
    """Encode a PIL image as PNG bytes."""
    buffer = io.BytesIO()
    pil_image.save(buffer, format="PNG")
    return buffer.getvalue()


def image_size(data: bytes) -> Optional[Tuple[int, int]]:
    """Return (width, height) of an encoded image, or None."""
    image = decode_image(data)
    if image is None:
        return None
    h, w = image.shape[:2]
    return w, h


def detect_mime_type(data: bytes, default: str = DEFAULT_MIME_TYPE) -> str:
    """Detect the MIME type of an encoded image using Pillow."""
    from PIL import Image, UnidentifiedImageError

    if not data:
        return default
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format, default)
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not identify image format: {e}")
        return default


# ============================================================================
# Eligibility
# ============================================================================

def is_genuine_raster(data: Optional[bytes]) -> bool:
    """
    Check whether a page image is real raster content.

    Missing pages, payloads below the minimum size, and undecodable
    bytes are placeholders.
    """
    if not data or len(data) < MIN_IMAGE_BYTES:
        return False
    return decode_image(data) is not None


def blank_page(
    width: int = 1920,
    height: int = 1080,
    color: Tuple[int, int, int] = (255, 255, 255)
) -> bytes:
    """Create a solid-color PNG page."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    return encode_png(image)
