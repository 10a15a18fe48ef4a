"""Address arithmetic for tile offset/size entries.

The table region follows the directories. For each level in order it holds
``tile_count`` little-endian u64 offsets, then ``tile_count`` u64 sizes.
A level with a single tile keeps its live entry inline in its directory
record instead; its 16 table bytes are still reserved so addresses of all
other levels depend on geometry alone.
"""

from __future__ import annotations

import struct

from fastcog.config import DIRECTORY_SLOT_SIZE, TABLE_ENTRY_SIZE
from fastcog.core.geometry import table_region_size
from fastcog.core.types import UNWRITTEN_OFFSET, LevelInfo

from .directory import CURRENT_LAYOUT, TagLayout, inline_value_location

U64 = struct.Struct("<Q")


class TileTable:
    """Maps (level, tile index) to the byte locations of its offset and size.

    Args:
        levels: Pyramid levels, level 0 first
        layout: Tag layout used for inline (single-tile) entries
    """

    def __init__(self, levels: list[LevelInfo], layout: TagLayout = CURRENT_LAYOUT) -> None:
        self.levels = levels
        self.layout = layout
        self.directories_size = DIRECTORY_SLOT_SIZE * len(levels)
        self.region_size = table_region_size(levels)

        self._table_offsets = []
        offset = self.directories_size
        for info in levels:
            self._table_offsets.append(offset)
            offset += info.tile_count * 2 * TABLE_ENTRY_SIZE

    def table_offset(self, level: int) -> int:
        """Absolute offset of a level's external offset array."""
        return self._table_offsets[level]

    def is_inline(self, level: int) -> bool:
        return self.levels[level].tile_count == 1

    def locations(self, level: int, tile_index: int) -> tuple[int, int]:
        """Absolute locations of a tile's offset and size fields.

        Returns:
            Tuple of (offset_location, size_location)
        """
        tile_count = self.levels[level].tile_count
        if tile_count > 1:
            offset_location = self._table_offsets[level] + tile_index * TABLE_ENTRY_SIZE
            return offset_location, offset_location + tile_count * TABLE_ENTRY_SIZE
        return (
            inline_value_location(level, self.layout.offsets_index),
            inline_value_location(level, self.layout.byte_counts_index),
        )

    def initial_table_bytes(self) -> bytes:
        """Offset/size tables for every level with all slots unwritten."""
        unwritten = U64.pack(UNWRITTEN_OFFSET)
        empty = bytes(TABLE_ENTRY_SIZE)
        chunks = []
        for info in self.levels:
            chunks.append(unwritten * info.tile_count)
            chunks.append(empty * info.tile_count)
        return b"".join(chunks)
