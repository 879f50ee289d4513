"""
normalizer.py - Reduce a decoded frame to an 8-bit grayscale image.

Grayscale frames go through the same two steps a viewer applies:

    value = stored_value * RescaleSlope + RescaleIntercept     (modality)
    display = clip((value - lower) / (upper - lower)) * 255     (VOI)

where [lower, upper] is the dataset's first VOI window when one is declared
(and ``normalizer.use_voi_window`` is on), otherwise the frame's own
min..max range.  A constant frame maps to all zeros.  MONOCHROME1 is
inverted so that higher values are always brighter.

Colour frames (RGB after decoding) are first reduced to 8 bits per sample
by dropping the low bits, then converted to luminance with Pillow's "L"
conversion, which uses the ITU-R 601-2 weights:

    L = R * 299/1000 + G * 587/1000 + B * 114/1000

Both paths are pure integer/float arithmetic with fixed rounding
(half-to-even), so the same frame always yields the same bytes.
"""

import logging
from typing import Optional

import numpy as np
from PIL import Image

from dicom_dripper.config import SETTINGS
from dicom_dripper.decoder import DecodedFrame
from dicom_dripper.errors import NormalizeError

logger = logging.getLogger(__name__)


def modality_values(frame: DecodedFrame) -> np.ndarray:
    """Stored values of *frame* mapped through RescaleSlope/Intercept, as float64."""
    return frame.pixels.astype(np.float64) * frame.rescale_slope + frame.rescale_intercept


def voi_bounds(center: float, width: float) -> tuple[float, float]:
    """Lower and upper display bounds of a VOI window."""
    if width <= 0:
        raise NormalizeError(f"Window width must be > 0, got {width}")
    half = width / 2.0
    return center - half, center + half


def display_range(
    values: np.ndarray,
    frame: DecodedFrame,
    use_voi_window: bool,
) -> tuple[float, float]:
    """
    Pick the value range that maps onto black..white.

    The frame's VOI window when it has one and windowing is enabled,
    otherwise the min..max of *values*.
    """
    if use_voi_window and frame.window_center is not None and frame.window_width:
        logger.debug(
            "Applying window: centre=%.1f, width=%.1f",
            frame.window_center, frame.window_width,
        )
        return voi_bounds(frame.window_center, frame.window_width)
    return float(values.min()), float(values.max())


def map_to_unit(values: np.ndarray, lower: float, upper: float) -> np.ndarray:
    """Clip *values* to [lower, upper] and scale linearly to [0, 1]. An empty range gives 0."""
    if upper <= lower:
        return np.zeros(values.shape, dtype=np.float64)
    return (np.clip(values, lower, upper) - lower) / (upper - lower)


def _to_uint8(unit: np.ndarray) -> np.ndarray:
    return np.round(unit * 255.0).astype(np.uint8)


def _grayscale(frame: DecodedFrame, use_voi_window: bool) -> np.ndarray:
    values = modality_values(frame)
    lower, upper = display_range(values, frame, use_voi_window)
    unit = map_to_unit(values, lower, upper)
    if frame.photometric == "MONOCHROME1":
        unit = 1.0 - unit
    return _to_uint8(unit)


def _luminance(frame: DecodedFrame) -> np.ndarray:
    rgb = frame.pixels
    if rgb.dtype != np.uint8:
        shift = max(int(frame.bits_stored) - 8, 0)
        rgb = (rgb.astype(np.uint32) >> shift).clip(0, 255).astype(np.uint8)
    return np.asarray(Image.fromarray(np.ascontiguousarray(rgb)).convert("L"))


def normalize(frame: DecodedFrame, use_voi_window: Optional[bool] = None) -> np.ndarray:
    """
    Convert *frame* to a single-channel uint8 image of the same size.

    Parameters
    ----------
    frame : DecodedFrame
        Output of ``decode_first_frame``.
    use_voi_window : bool, optional
        Override ``Settings.use_voi_window``.

    Returns
    -------
    np.ndarray
        Shape (rows, columns), dtype uint8.

    Raises
    ------
    NormalizeError
        A zero dimension, or a pixel buffer whose shape disagrees with the
        declared rows/columns/samples.
    """
    if use_voi_window is None:
        use_voi_window = SETTINGS.use_voi_window

    if frame.rows <= 0 or frame.columns <= 0:
        raise NormalizeError(
            f"Frame has zero dimension ({frame.columns}x{frame.rows})"
        )

    if frame.samples_per_pixel == 1:
        expected = (frame.rows, frame.columns)
    elif frame.samples_per_pixel == 3:
        expected = (frame.rows, frame.columns, 3)
    else:
        raise NormalizeError(
            f"Unsupported samples per pixel: {frame.samples_per_pixel}"
        )
    if frame.pixels.shape != expected:
        raise NormalizeError(
            f"Pixel buffer shape {frame.pixels.shape} does not match {expected}"
        )

    if frame.samples_per_pixel == 3:
        image = _luminance(frame)
    else:
        image = _grayscale(frame, use_voi_window)

    logger.debug("Normalized %s frame to %dx%d L", frame.photometric, frame.columns, frame.rows)
    return image
