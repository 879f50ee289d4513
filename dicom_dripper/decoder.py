"""
decoder.py - Decode the first frame of a dataset's Pixel Data element.

Decoding is delegated to pydicom's pixel data decoders, which read Rows,
Columns, SamplesPerPixel, BitsAllocated/BitsStored, PixelRepresentation,
PhotometricInterpretation and the transfer syntax from the dataset itself.
Compressed syntaxes need a decoding plugin (Pillow covers JPEG baseline
and JPEG 2000); when none is installed the file fails with
PixelDecodeError rather than aborting the batch.

Only frame 0 is decoded.  Multi-frame files are deliberately truncated to
their first frame; cine/volume extraction is out of scope.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from pydicom.dataset import Dataset
from pydicom.pixels import apply_color_lut, convert_color_space, get_decoder

from dicom_dripper.errors import PixelDecodeError

logger = logging.getLogger(__name__)

# DICOM Transfer Syntax UIDs that pydicom ships a decoder for.
_NATIVE_TRANSFER_SYNTAXES = frozenset([
    "1.2.840.10008.1.2",        # Implicit VR Little Endian
    "1.2.840.10008.1.2.1",      # Explicit VR Little Endian
    "1.2.840.10008.1.2.1.99",   # Deflated Explicit VR Little Endian
    "1.2.840.10008.1.2.2",      # Explicit VR Big Endian
])
_ENCAPSULATED_TRANSFER_SYNTAXES = frozenset([
    "1.2.840.10008.1.2.5",      # RLE Lossless
    "1.2.840.10008.1.2.4.50",   # JPEG Baseline (Process 1)
    "1.2.840.10008.1.2.4.51",   # JPEG Extended (Process 2 & 4)
    "1.2.840.10008.1.2.4.57",   # JPEG Lossless (Process 14)
    "1.2.840.10008.1.2.4.70",   # JPEG Lossless SV1
    "1.2.840.10008.1.2.4.80",   # JPEG-LS Lossless
    "1.2.840.10008.1.2.4.81",   # JPEG-LS Near-Lossless
    "1.2.840.10008.1.2.4.90",   # JPEG 2000 Lossless
    "1.2.840.10008.1.2.4.91",   # JPEG 2000
])
SUPPORTED_TRANSFER_SYNTAXES = _NATIVE_TRANSFER_SYNTAXES | _ENCAPSULATED_TRANSFER_SYNTAXES

_PALETTE_COLOR = "PALETTE COLOR"
_YBR_CONVERTIBLE = frozenset(["YBR_FULL", "YBR_FULL_422"])


@dataclass
class DecodedFrame:
    """A single decoded frame plus the display parameters that go with it."""
    pixels: np.ndarray
    rows: int
    columns: int
    samples_per_pixel: int
    photometric: str
    bits_stored: int
    rescale_slope: float = 1.0
    rescale_intercept: float = 0.0
    window_center: Optional[float] = None
    window_width: Optional[float] = None


def _first_value(value) -> float:
    # WindowCenter/Width can be a MultiValue list; take the first element
    if hasattr(value, "__iter__") and not isinstance(value, (str, bytes)):
        return float(list(value)[0])
    return float(value)


def _window_from_dataset(ds: Dataset) -> tuple[Optional[float], Optional[float]]:
    wc = ds.get("WindowCenter")
    ww = ds.get("WindowWidth")
    if wc is None or ww is None:
        return None, None
    try:
        center, width = _first_value(wc), _first_value(ww)
    except (TypeError, ValueError, IndexError):
        logger.debug("Ignoring unreadable VOI window %r/%r", wc, ww)
        return None, None
    if width <= 0:
        return None, None
    return center, width


def _numeric_attribute(ds: Dataset, keyword: str, default: float, path: Optional[str]) -> float:
    # Absent or empty (type 2/3 elements may be zero length) means the default.
    try:
        value = ds.get(keyword)
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        return _first_value(value)
    except (TypeError, ValueError, IndexError) as exc:
        raise PixelDecodeError(f"Unreadable {keyword}: {exc}", path=path) from exc


def _declared_int(meta: dict, key: str, ds: Dataset, keyword: str, default: int, path: Optional[str]) -> int:
    # Prefer what the decoder reports, then the dataset, then the default.
    try:
        value = meta.get(key)
        if value is None:
            value = ds.get(keyword)
        if value is None:
            value = default
        return int(value)
    except (TypeError, ValueError) as exc:
        raise PixelDecodeError(f"Unreadable {keyword}: {exc}", path=path) from exc


def transfer_syntax_of(ds: Dataset) -> Optional[str]:
    """Return the dataset's TransferSyntaxUID as a plain string, if any."""
    file_meta = getattr(ds, "file_meta", None)
    if file_meta is None or "TransferSyntaxUID" not in file_meta:
        return None
    return str(file_meta.TransferSyntaxUID)


def decode_first_frame(ds: Dataset, path: Optional[str] = None) -> DecodedFrame:
    """
    Decode frame 0 of *ds* into a numpy array.

    Colour data comes back as RGB: YBR encodings are converted by the
    decoder and PALETTE COLOR is expanded through its lookup table.

    Parameters
    ----------
    ds : Dataset
        Parsed dataset, as returned by ``read_container``.
    path : str, optional
        Source path, only used for error context.

    Returns
    -------
    DecodedFrame

    Raises
    ------
    PixelDecodeError
        No pixel data, unrecognised transfer syntax, decoder failure, or a
        decoded shape that disagrees with Rows/Columns/SamplesPerPixel.
    """
    if "PixelData" not in ds:
        raise PixelDecodeError("Dataset has no Pixel Data element", path=path)

    syntax = transfer_syntax_of(ds)
    if syntax is None:
        raise PixelDecodeError("Dataset declares no transfer syntax", path=path)
    if syntax not in SUPPORTED_TRANSFER_SYNTAXES:
        raise PixelDecodeError(f"Unsupported transfer syntax {syntax}", path=path)

    try:
        decoder = get_decoder(syntax)
        arr, meta = decoder.as_array(ds, index=0, as_rgb=True)
    except Exception as exc:
        raise PixelDecodeError(
            f"Could not decode pixel data ({syntax}): {exc}", path=path,
        ) from exc

    rows = _declared_int(meta, "rows", ds, "Rows", 0, path)
    columns = _declared_int(meta, "columns", ds, "Columns", 0, path)
    samples = _declared_int(meta, "samples_per_pixel", ds, "SamplesPerPixel", 1, path)
    photometric = str(
        meta.get("photometric_interpretation") or ds.get("PhotometricInterpretation") or ""
    ).upper()
    bits_stored = _declared_int(meta, "bits_stored", ds, "BitsStored", 8, path)

    if photometric in _YBR_CONVERTIBLE and samples == 3:
        # Plugins that ignore as_rgb hand back YBR untouched.
        arr = convert_color_space(arr, photometric, "RGB")
        photometric = "RGB"
    elif photometric == _PALETTE_COLOR:
        try:
            arr = apply_color_lut(arr, ds)
        except Exception as exc:
            raise PixelDecodeError(
                f"Could not apply palette colour lookup: {exc}", path=path,
            ) from exc
        photometric = "RGB"
        samples = 3
        bits_stored = 16 if arr.dtype.itemsize > 1 else 8

    expected = (rows, columns) if samples == 1 else (rows, columns, samples)
    if arr.shape != expected:
        raise PixelDecodeError(
            f"Decoded shape {arr.shape} does not match declared {expected}",
            path=path,
        )

    center, width = _window_from_dataset(ds)
    frame = DecodedFrame(
        pixels=arr,
        rows=rows,
        columns=columns,
        samples_per_pixel=samples,
        photometric=photometric,
        bits_stored=bits_stored,
        rescale_slope=_numeric_attribute(ds, "RescaleSlope", 1.0, path),
        rescale_intercept=_numeric_attribute(ds, "RescaleIntercept", 0.0, path),
        window_center=center,
        window_width=width,
    )

    n_frames = _declared_int(meta, "number_of_frames", ds, "NumberOfFrames", 1, path)
    if n_frames > 1:
        logger.debug("Using frame 0 of %d", n_frames)
    logger.debug(
        "Decoded %dx%d %s frame (%d bits stored)",
        columns, rows, photometric, bits_stored,
    )
    return frame
