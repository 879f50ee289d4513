"""Tests for dicom_dripper/decoder.py."""

import numpy as np
import pytest
from pydicom import examples
from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, RLELossless, generate_uid

from dicom_dripper.decoder import SUPPORTED_TRANSFER_SYNTAXES, decode_first_frame
from dicom_dripper.errors import PixelDecodeError
from dicom_dripper.normalizer import normalize


def _make_ds(
    pixels: np.ndarray,
    photometric: str = "MONOCHROME2",
    frames: int = 1,
    transfer_syntax: str = ExplicitVRLittleEndian,
) -> Dataset:
    """Build an in-memory dataset around native little endian *pixels*."""
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.7"
    file_meta.MediaStorageSOPInstanceUID = generate_uid()
    file_meta.TransferSyntaxUID = transfer_syntax

    ds = Dataset()
    ds.file_meta = file_meta
    samples = 3 if photometric.startswith(("RGB", "YBR")) else 1
    shape = pixels.shape[1:] if frames > 1 else pixels.shape
    ds.Rows, ds.Columns = shape[0], shape[1]
    ds.SamplesPerPixel = samples
    ds.PhotometricInterpretation = photometric
    if samples == 3:
        ds.PlanarConfiguration = 0
    ds.PixelRepresentation = 0
    bits = pixels.dtype.itemsize * 8
    ds.BitsAllocated = bits
    ds.BitsStored = bits
    ds.HighBit = bits - 1
    if frames > 1:
        ds.NumberOfFrames = frames
    ds.PixelData = pixels.tobytes()
    return ds


class TestDecodeNative:
    def test_grayscale_16_bit(self):
        pixels = np.arange(24, dtype=np.uint16).reshape(6, 4)
        frame = decode_first_frame(_make_ds(pixels))
        assert frame.rows == 6
        assert frame.columns == 4
        assert frame.samples_per_pixel == 1
        assert frame.photometric == "MONOCHROME2"
        assert frame.bits_stored == 16
        np.testing.assert_array_equal(frame.pixels, pixels)

    def test_rgb_8_bit(self):
        pixels = np.zeros((2, 3, 3), dtype=np.uint8)
        pixels[..., 1] = 200
        frame = decode_first_frame(_make_ds(pixels, photometric="RGB"))
        assert frame.pixels.shape == (2, 3, 3)
        assert frame.samples_per_pixel == 3
        np.testing.assert_array_equal(frame.pixels, pixels)

    def test_ybr_full_is_delivered_as_rgb(self):
        pixels = np.zeros((2, 2, 3), dtype=np.uint8)
        pixels[..., 0] = 100
        pixels[..., 1:] = 128
        frame = decode_first_frame(_make_ds(pixels, photometric="YBR_FULL"))
        assert frame.pixels.shape == (2, 2, 3)
        assert np.abs(frame.pixels.astype(int) - 100).max() <= 1

    def test_only_first_frame_is_decoded(self):
        pixels = np.stack([
            np.full((4, 4), 10, dtype=np.uint16),
            np.full((4, 4), 900, dtype=np.uint16),
        ])
        frame = decode_first_frame(_make_ds(pixels, frames=2))
        assert frame.pixels.shape == (4, 4)
        assert np.all(frame.pixels == 10)

    def test_rescale_and_window_are_carried(self):
        ds = _make_ds(np.zeros((2, 2), dtype=np.uint16))
        ds.RescaleSlope = 2
        ds.RescaleIntercept = -1024
        ds.WindowCenter = [40, 400]
        ds.WindowWidth = [80, 1800]
        frame = decode_first_frame(ds)
        assert frame.rescale_slope == 2.0
        assert frame.rescale_intercept == -1024.0
        assert frame.window_center == 40.0
        assert frame.window_width == 80.0

    def test_missing_window_leaves_none(self):
        frame = decode_first_frame(_make_ds(np.zeros((2, 2), dtype=np.uint16)))
        assert frame.window_center is None
        assert frame.window_width is None

    def test_empty_rescale_falls_back_to_identity(self):
        ds = _make_ds(np.zeros((2, 2), dtype=np.uint16))
        ds.RescaleSlope = None
        ds.RescaleIntercept = None
        frame = decode_first_frame(ds)
        assert frame.rescale_slope == 1.0
        assert frame.rescale_intercept == 0.0


class TestDecodePalette:
    def test_palette_is_expanded_to_rgb(self):
        ds = examples.palette_color
        assert ds.PhotometricInterpretation == "PALETTE COLOR"
        frame = decode_first_frame(ds)
        assert frame.photometric == "RGB"
        assert frame.samples_per_pixel == 3
        assert frame.pixels.shape == (ds.Rows, ds.Columns, 3)

    def test_palette_frame_normalizes_to_grayscale(self):
        ds = examples.palette_color
        image = normalize(decode_first_frame(ds))
        assert image.dtype == np.uint8
        assert image.shape == (ds.Rows, ds.Columns)


class TestDecodeRle:
    def test_rle_matches_uncompressed(self):
        pixels = np.arange(64, dtype=np.uint16).reshape(8, 8) * 100
        ds = _make_ds(pixels)
        ds.compress(RLELossless)
        frame = decode_first_frame(ds)
        np.testing.assert_array_equal(frame.pixels, pixels)


class TestDecodeErrors:
    def test_missing_pixel_data(self):
        ds = _make_ds(np.zeros((2, 2), dtype=np.uint16))
        del ds.PixelData
        with pytest.raises(PixelDecodeError, match="no Pixel Data"):
            decode_first_frame(ds, path="x.dcm")

    def test_unrecognised_transfer_syntax(self):
        private_syntax = "1.2.826.0.1.3680043.9.9999.1"
        assert private_syntax not in SUPPORTED_TRANSFER_SYNTAXES
        ds = _make_ds(np.zeros((2, 2), dtype=np.uint16), transfer_syntax=private_syntax)
        with pytest.raises(PixelDecodeError, match="Unsupported transfer syntax") as excinfo:
            decode_first_frame(ds, path="x.dcm")
        assert excinfo.value.path == "x.dcm"

    def test_missing_transfer_syntax(self):
        ds = _make_ds(np.zeros((2, 2), dtype=np.uint16))
        del ds.file_meta.TransferSyntaxUID
        with pytest.raises(PixelDecodeError):
            decode_first_frame(ds)

    def test_short_pixel_buffer(self):
        ds = _make_ds(np.zeros((4, 4), dtype=np.uint16))
        ds.PixelData = b"\x00" * 8
        with pytest.raises(PixelDecodeError):
            decode_first_frame(ds)

    def test_unreadable_rescale_slope(self):
        ds = _make_ds(np.zeros((2, 2), dtype=np.uint16))
        ds.add(DataElement(0x00281053, "LO", "steep"))
        with pytest.raises(PixelDecodeError, match="RescaleSlope") as excinfo:
            decode_first_frame(ds, path="x.dcm")
        assert excinfo.value.path == "x.dcm"
