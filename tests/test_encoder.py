"""Tests for dicom_dripper/encoder.py."""

import io

import numpy as np
import pytest
from PIL import Image

from dicom_dripper.encoder import (
    DATA_URL_PREFIX,
    decode_data_url,
    encode_png,
    encode_png_data_url,
)
from dicom_dripper.errors import EncodeError


class TestEncodePngDataUrl:
    def test_prefix(self):
        payload = encode_png_data_url(np.zeros((4, 4), dtype=np.uint8))
        assert payload.startswith("data:image/png;base64,")
        assert payload.startswith(DATA_URL_PREFIX)

    def test_payload_decodes_to_single_channel_png(self):
        image = np.arange(24, dtype=np.uint8).reshape(6, 4)
        mime, raw = decode_data_url(encode_png_data_url(image))
        assert mime == "image/png"
        with Image.open(io.BytesIO(raw)) as png:
            assert png.format == "PNG"
            assert png.mode == "L"
            assert png.size == (4, 6)
            np.testing.assert_array_equal(np.asarray(png), image)

    def test_deterministic(self):
        image = np.random.default_rng(3).integers(0, 256, size=(32, 32)).astype(np.uint8)
        assert encode_png_data_url(image) == encode_png_data_url(image)

    def test_multichannel_array_is_rejected(self):
        with pytest.raises(EncodeError):
            encode_png(np.zeros((2, 2, 4), dtype=np.uint8))


class TestDecodeDataUrl:
    def test_not_a_data_url(self):
        with pytest.raises(EncodeError):
            decode_data_url("http://example.com/a.png")

    def test_not_base64(self):
        with pytest.raises(EncodeError):
            decode_data_url("data:image/png,rawbytes")

    def test_invalid_base64(self):
        with pytest.raises(EncodeError):
            decode_data_url("data:image/png;base64,@@@")
