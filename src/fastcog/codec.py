"""LZW tile codec.

Tiles are compressed with TIFF-flavoured LZW (compression tag 5, MSB bit
order with the early code-size switch) via imagecodecs. The container never
looks inside a payload; callers compress before :meth:`CogBuilder.write_tile`
and decompress after :meth:`CogBuilder.read_tile`.

Usage:
    from fastcog.codec import compress_tile, decompress_tile, tile_to_bytes

    raw = tile_to_bytes(pixels, bits_per_sample=(8, 8, 8))
    builder.write_tile(level, index, compress_tile(raw))
"""

from __future__ import annotations

from typing import Sequence

import imagecodecs
import numpy as np

from fastcog.config import TILE_SIZE
from fastcog.core.errors import GeometryError, TileDecodeError


def compress_tile(raw: bytes) -> bytes:
    """LZW-compress a raw tile."""
    return imagecodecs.lzw_encode(raw)


def decompress_tile(data: bytes) -> bytes:
    """Decompress an LZW tile payload.

    Raises:
        TileDecodeError: If the payload is not valid LZW
    """
    try:
        return imagecodecs.lzw_decode(data)
    except (ValueError, RuntimeError) as e:
        raise TileDecodeError(f"Malformed LZW tile payload: {e}") from e


def sample_dtype(bits_per_sample: Sequence[int], signed: bool = False) -> np.dtype:
    """numpy dtype holding one sample of the given (uniform) bit depth.

    Raises:
        GeometryError: If channels have different depths or the depth is
            not a whole number of bytes up to 64 bits
    """
    depths = set(bits_per_sample)
    if len(depths) != 1:
        raise GeometryError(f"Mixed channel depths are not supported: {sorted(depths)}")
    bits = depths.pop()
    if bits not in (8, 16, 32, 64):
        raise GeometryError(f"Unsupported sample depth: {bits} bits")
    return np.dtype(f"<{'i' if signed else 'u'}{bits // 8}")


def tile_to_bytes(
    array: np.ndarray,
    bits_per_sample: Sequence[int],
    signed: bool = False,
) -> bytes:
    """Convert a tile array to raw interleaved bytes of a full tile.

    Edge tiles smaller than ``TILE_SIZE`` are zero-padded on the right and
    bottom.

    Args:
        array: (H, W) or (H, W, C) numpy array, H and W at most TILE_SIZE
        bits_per_sample: Bit depth of each channel
        signed: Whether samples are signed

    Returns:
        TILE_SIZE * TILE_SIZE * C samples as little-endian bytes
    """
    channels = len(bits_per_sample)
    if array.ndim == 2:
        array = array[:, :, np.newaxis]
    if array.ndim != 3 or array.shape[2] != channels:
        raise ValueError(
            f"Expected (H, W, {channels}) tile array, got shape {array.shape}"
        )
    height, width = array.shape[:2]
    if height > TILE_SIZE or width > TILE_SIZE:
        raise ValueError(f"Tile array {width}x{height} exceeds {TILE_SIZE}x{TILE_SIZE}")

    dtype = sample_dtype(bits_per_sample, signed)
    tile = np.zeros((TILE_SIZE, TILE_SIZE, channels), dtype=dtype)
    tile[:height, :width] = array
    return tile.tobytes()


def bytes_to_tile(
    raw: bytes,
    bits_per_sample: Sequence[int],
    signed: bool = False,
) -> np.ndarray:
    """View raw tile bytes as a (TILE_SIZE, TILE_SIZE, C) array."""
    dtype = sample_dtype(bits_per_sample, signed)
    channels = len(bits_per_sample)
    expected = TILE_SIZE * TILE_SIZE * channels * dtype.itemsize
    if len(raw) != expected:
        raise TileDecodeError(f"Decoded tile is {len(raw)} bytes, expected {expected}")
    return np.frombuffer(raw, dtype=dtype).reshape(TILE_SIZE, TILE_SIZE, channels)
