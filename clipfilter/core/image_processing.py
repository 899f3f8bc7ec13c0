"""
Image Encoding and Decoding
===========================

Pillow-based conversions between clipboard images and the base64 forms the
API templates use.

Key Components:
- image_to_base64_png(): Encode a clipboard image as base64 PNG
- base64_to_image(): Decode an API result into a loaded PIL image
- to_data_url(): Wrap base64 PNG data in a data URL
- decode_base64(): Raw bytes for multipart uploads

Dependencies:
- PIL (Pillow): Image encoding and decoding

Author: clipfilter Project
"""

import base64
import binascii
import io
import logging
import re
from typing import Optional

from PIL import Image, UnidentifiedImageError

from clipfilter.core import config

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def to_data_url(image_b64: str) -> str:
    return f"{config.PNG_DATA_URL_PREFIX}{image_b64}" if image_b64 else ""


def decode_base64(image_b64: str) -> bytes:
    """
    Decode base64 text leniently.

    Whitespace is ignored and missing padding is restored. Both the standard
    and the URL-safe alphabet are accepted.

    Raises:
        ValueError: If the text is not base64
    """
    cleaned = _WHITESPACE.sub("", image_b64 or "")
    if not cleaned:
        return b""
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        if "-" in cleaned or "_" in cleaned:
            return base64.urlsafe_b64decode(cleaned)
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 data: {e}") from e


def image_to_base64_png(image: Image.Image) -> str:
    """
    Encode an image as base64 PNG.

    Args:
        image: Source image (any mode Pillow can save as PNG)

    Returns:
        Base64 text without line breaks

    Raises:
        OSError: If Pillow cannot encode the image
    """
    if image.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
        image = image.convert("RGBA")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def base64_to_image(image_b64: str) -> Optional[Image.Image]:
    """
    Decode base64 image data into a fully loaded PIL image.

    Returns:
        The image, or None if the data is empty, not base64, or not an image
    """
    try:
        raw = decode_base64(image_b64)
    except ValueError as e:
        logger.debug(f"Result is not base64: {e}")
        return None
    if not raw:
        return None
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
        return image
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        logger.debug(f"Result bytes are not a decodable image ({len(raw)} bytes): {e}")
        return None
