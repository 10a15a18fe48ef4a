"""fastcog - incrementally written Cloud-Optimized BigTIFF tile pyramids."""

__version__ = "0.1.0"

from fastcog.codec import compress_tile, decompress_tile
from fastcog.container import CogBuilder
from fastcog.core import (
    CogError,
    ConsistencyError,
    ContainerIOError,
    GeometryError,
    LevelInfo,
    TileDecodeError,
    TileState,
    calculate_levels,
)

__all__ = [
    "CogBuilder",
    "compress_tile",
    "decompress_tile",
    "calculate_levels",
    "LevelInfo",
    "TileState",
    "CogError",
    "ConsistencyError",
    "ContainerIOError",
    "GeometryError",
    "TileDecodeError",
]
