"""Tests for the LZW tile codec boundary."""

from __future__ import annotations

import imagecodecs
import numpy as np
import pytest

from fastcog import codec
from fastcog.codec import (
    bytes_to_tile,
    compress_tile,
    decompress_tile,
    sample_dtype,
    tile_to_bytes,
)
from fastcog.core.errors import GeometryError, TileDecodeError


class TestLzw:
    """Tests for compress/decompress."""

    def test_round_trip(self) -> None:
        raw = bytes(range(256)) * 4096
        compressed = compress_tile(raw)
        assert len(compressed) < len(raw)
        assert decompress_tile(compressed) == raw

    def test_compatible_with_imagecodecs_decoder(self) -> None:
        """Payloads decode with the same LZW flavour TIFF readers use."""
        raw = np.full((1024, 1024), 255, dtype=np.uint8).tobytes()
        assert imagecodecs.lzw_decode(compress_tile(raw)) == raw

    def test_decode_error_wrapped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _broken(data: bytes) -> bytes:
            raise RuntimeError("invalid code")

        monkeypatch.setattr(codec.imagecodecs, "lzw_decode", _broken)
        with pytest.raises(TileDecodeError) as excinfo:
            decompress_tile(b"\x80\x00")
        assert isinstance(excinfo.value.__cause__, RuntimeError)


class TestTileArrays:
    """Tests for converting tile arrays to raw bytes."""

    @pytest.mark.parametrize(
        "bits, signed, expected",
        [
            ([8], False, np.dtype("u1")),
            ([8, 8, 8], False, np.dtype("u1")),
            ([16], True, np.dtype("<i2")),
            ([32, 32], False, np.dtype("<u4")),
        ],
    )
    def test_sample_dtype(self, bits: list[int], signed: bool, expected: np.dtype) -> None:
        assert sample_dtype(bits, signed) == expected

    @pytest.mark.parametrize("bits", [[8, 16], [12], [1]])
    def test_unsupported_sample_dtype(self, bits: list[int]) -> None:
        with pytest.raises(GeometryError):
            sample_dtype(bits)

    def test_full_tile(self) -> None:
        tile = np.random.default_rng(0).integers(0, 255, (1024, 1024, 3), dtype=np.uint8)
        raw = tile_to_bytes(tile, [8, 8, 8])
        assert len(raw) == 1024 * 1024 * 3
        np.testing.assert_array_equal(bytes_to_tile(raw, [8, 8, 8]), tile)

    def test_edge_tile_padded(self) -> None:
        edge = np.full((100, 300), 7, dtype=np.uint8)
        tile = bytes_to_tile(tile_to_bytes(edge, [8]), [8])

        assert tile.shape == (1024, 1024, 1)
        assert (tile[:100, :300] == 7).all()
        assert (tile[100:, :] == 0).all()
        assert (tile[:, 300:] == 0).all()

    def test_sixteen_bit(self) -> None:
        edge = np.arange(1024 * 2, dtype=np.uint16).reshape(2, 1024)
        tile = bytes_to_tile(tile_to_bytes(edge, [16]), [16])
        assert tile.dtype == np.dtype("<u2")
        np.testing.assert_array_equal(tile[:2, :, 0], edge)

    def test_channel_mismatch(self) -> None:
        with pytest.raises(ValueError, match="Expected"):
            tile_to_bytes(np.zeros((10, 10, 3), dtype=np.uint8), [8])

    def test_oversized_tile(self) -> None:
        with pytest.raises(ValueError, match="exceeds"):
            tile_to_bytes(np.zeros((1025, 10), dtype=np.uint8), [8])

    def test_wrong_raw_length(self) -> None:
        with pytest.raises(TileDecodeError):
            bytes_to_tile(b"\0" * 10, [8])
