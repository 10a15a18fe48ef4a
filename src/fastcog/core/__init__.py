"""Core types, errors and pyramid geometry."""

from .errors import (
    CogError,
    ConsistencyError,
    ContainerIOError,
    GeometryError,
    TileDecodeError,
)
from .geometry import calculate_levels, table_region_size, total_tiles
from .types import LevelInfo, TileCoord, TileState

__all__ = [
    "CogError",
    "ConsistencyError",
    "ContainerIOError",
    "GeometryError",
    "TileDecodeError",
    "calculate_levels",
    "table_region_size",
    "total_tiles",
    "LevelInfo",
    "TileCoord",
    "TileState",
]
