"""
encoder.py - Wrap a normalized image as a self-contained PNG data URL.

The payload has the form ``data:image/png;base64,<data>`` and can be used
directly as an <img src> without writing a file anywhere.
"""

import base64
import binascii
import io
import logging
from typing import Optional

import numpy as np
from PIL import Image

from dicom_dripper.config import SETTINGS
from dicom_dripper.errors import EncodeError

logger = logging.getLogger(__name__)

PNG_MIME = "image/png"
DATA_URL_PREFIX = f"data:{PNG_MIME};base64,"


def encode_png(image: np.ndarray, compress_level: Optional[int] = None) -> bytes:
    """Serialize a 2-D uint8 array as grayscale PNG bytes."""
    if compress_level is None:
        compress_level = SETTINGS.png_compress_level
    try:
        img = Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8))
    except (ValueError, TypeError) as exc:
        raise EncodeError(f"Cannot build image from array: {exc}") from exc
    if img.mode != "L":
        raise EncodeError(f"Expected a single-channel image, got mode {img.mode}")

    try:
        with io.BytesIO() as buffered:
            img.save(buffered, format="PNG", compress_level=compress_level)
            return buffered.getvalue()
    except (ValueError, OSError) as exc:
        raise EncodeError(f"PNG serialization failed: {exc}") from exc


def encode_png_data_url(image: np.ndarray, compress_level: Optional[int] = None) -> str:
    """
    Encode *image* as PNG and return it as a base64 data URL.

    Raises
    ------
    EncodeError
        If Pillow cannot serialize the array.
    """
    png = encode_png(image, compress_level=compress_level)
    payload = DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")
    logger.debug("Encoded %d PNG bytes into a %d character data URL", len(png), len(payload))
    return payload


def decode_data_url(payload: str) -> tuple[str, bytes]:
    """
    Split a ``data:<mime>;base64,<data>`` string into (mime, raw bytes).

    Raises
    ------
    EncodeError
        If *payload* is not a base64 data URL.
    """
    if not payload.startswith("data:"):
        raise EncodeError("Payload is not a data URL")
    header, sep, data = payload[len("data:"):].partition(",")
    if not sep or not header.endswith(";base64"):
        raise EncodeError("Payload is not a base64 data URL")
    try:
        raw = base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise EncodeError(f"Invalid base64 data: {exc}") from exc
    return header[: -len(";base64")], raw
