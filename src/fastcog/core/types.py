"""Shared type definitions for the fastcog core module."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

#: Offset value marking a slot that was never written
UNWRITTEN_OFFSET = 1

#: Offset value marking a slot explicitly written as empty
NODATA_OFFSET = 0


class TileCoord(NamedTuple):
    """Coordinate of a tile in the pyramid.

    Attributes:
        level: Pyramid level (0 = full resolution)
        col: Column index (0-based)
        row: Row index (0-based)
    """

    level: int
    col: int
    row: int

    def index(self, cols: int) -> int:
        """Row-major tile index within a level that is ``cols`` tiles wide."""
        return self.row * cols + self.col


@dataclass(frozen=True)
class LevelInfo:
    """Information about a pyramid level.

    Attributes:
        level: Level index (0 = full resolution)
        width: Level width in pixels
        height: Level height in pixels
        cols: Number of tile columns at this level
        rows: Number of tile rows at this level
    """

    level: int
    width: int
    height: int
    cols: int
    rows: int

    @property
    def tile_count(self) -> int:
        return self.cols * self.rows

    @property
    def downsample(self) -> int:
        """Downsample factor relative to level 0 (1 = full res)."""
        return 2**self.level


class TileState(Enum):
    """Storage state of one tile slot."""

    UNWRITTEN = "unwritten"  # Never written since the container was created
    NODATA = "nodata"  # Explicitly marked as empty
    WRITTEN = "written"  # Payload stored in the container

    @classmethod
    def from_entry(cls, offset: int, size: int) -> TileState:
        """Decode a slot's state from its offset and size fields."""
        if offset == UNWRITTEN_OFFSET:
            return cls.UNWRITTEN
        if offset == NODATA_OFFSET or size == 0:
            return cls.NODATA
        return cls.WRITTEN
