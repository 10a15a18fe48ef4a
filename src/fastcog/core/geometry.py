"""Pyramid geometry for tiled containers."""

from __future__ import annotations

from fastcog.config import (
    DIRECTORY_SLOT_SIZE,
    MAX_DIMENSION,
    MAX_TILES_PER_LEVEL,
    TABLE_ENTRY_SIZE,
    TILE_SIZE,
)

from .errors import GeometryError
from .types import LevelInfo


def calculate_levels(width: int, height: int, tile_size: int = TILE_SIZE) -> list[LevelInfo]:
    """Calculate level info from base image dimensions and tile size.

    Uses iterative ceiling-halving: a new level is added while either
    dimension of the current level exceeds the tile size, so the last level
    always fits in a single tile.

    Args:
        width: Base image width in pixels
        height: Base image height in pixels
        tile_size: Tile edge length in pixels

    Returns:
        List of LevelInfo, level 0 = full resolution

    Raises:
        GeometryError: If a dimension is out of range or a level's tile
            count does not fit in 32 bits
    """
    for name, value in (("width", width), ("height", height)):
        if not 0 < value <= MAX_DIMENSION:
            raise GeometryError(f"{name} must be in 1..{MAX_DIMENSION}, got {value}")
    if tile_size < 1:
        raise GeometryError(f"tile_size must be positive, got {tile_size}")

    levels = []
    w, h = width, height
    while True:
        cols = (w + tile_size - 1) // tile_size
        rows = (h + tile_size - 1) // tile_size
        if cols * rows > MAX_TILES_PER_LEVEL:
            raise GeometryError(
                f"Level {len(levels)} ({w}x{h}) needs {cols * rows} tiles, "
                f"more than {MAX_TILES_PER_LEVEL}"
            )
        levels.append(LevelInfo(level=len(levels), width=w, height=h, cols=cols, rows=rows))

        if w <= tile_size and h <= tile_size:
            break
        w = (w + 1) // 2
        h = (h + 1) // 2
    return levels


def total_tiles(levels: list[LevelInfo]) -> int:
    return sum(info.tile_count for info in levels)


def table_region_size(levels: list[LevelInfo]) -> int:
    """Size of the header, directories and offset/size tables together.

    Every level reserves an offset and a size entry per tile, including the
    single-tile last level whose live values are kept inline in its directory.
    """
    return DIRECTORY_SLOT_SIZE * len(levels) + 2 * TABLE_ENTRY_SIZE * total_tiles(levels)
