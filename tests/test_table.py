"""Tests for tile offset/size address arithmetic."""

from __future__ import annotations

import struct

import pytest

from fastcog.container.directory import LAYOUT_V1
from fastcog.container.table import TileTable
from fastcog.core.geometry import calculate_levels


@pytest.fixture
def table() -> TileTable:
    return TileTable(calculate_levels(4096, 4096))


class TestTileTable:
    """Tests for TileTable locations."""

    def test_region(self, table: TileTable) -> None:
        assert table.directories_size == 3072
        assert table.region_size == 3072 + 21 * 16

    def test_table_offsets(self, table: TileTable) -> None:
        assert table.table_offset(0) == 3072
        assert table.table_offset(1) == 3072 + 16 * 16
        assert table.table_offset(2) == 3072 + 16 * 16 + 4 * 16

    @pytest.mark.parametrize(
        "level, index, expected",
        [
            (0, 0, (3072, 3072 + 128)),
            (0, 15, (3072 + 120, 3072 + 128 + 120)),
            (1, 0, (3328, 3328 + 32)),
            (1, 3, (3328 + 24, 3328 + 32 + 24)),
        ],
    )
    def test_external_locations(self, table: TileTable, level: int, index: int, expected: tuple[int, int]) -> None:
        assert table.locations(level, index) == expected

    def test_inline_location(self, table: TileTable) -> None:
        """The single-tile level keeps its entry in the directory's tag values."""
        assert table.is_inline(2)
        assert not table.is_inline(1)
        assert table.locations(2, 0) == (2048 + 8 + 9 * 20 + 12, 2048 + 8 + 10 * 20 + 12)

    def test_inline_location_level_0(self) -> None:
        table = TileTable(calculate_levels(800, 600))
        assert table.locations(0, 0) == (16 + 8 + 9 * 20 + 12, 16 + 8 + 10 * 20 + 12)

    def test_inline_location_follows_layout(self) -> None:
        table = TileTable(calculate_levels(4096, 4096), LAYOUT_V1)
        assert table.locations(2, 0) == (2048 + 8 + 8 * 20 + 12, 2048 + 8 + 9 * 20 + 12)

    def test_initial_table_bytes(self, table: TileTable) -> None:
        data = table.initial_table_bytes()
        assert len(data) == table.region_size - table.directories_size

        values = struct.unpack(f"<{len(data) // 8}Q", data)
        # Level 0: 16 offsets of 1 then 16 sizes of 0
        assert values[:16] == (1,) * 16
        assert values[16:32] == (0,) * 16
        # Level 1 follows directly
        assert values[32:36] == (1,) * 4
        assert values[36:40] == (0,) * 4
        # Reserved entry of the inline level
        assert values[40:] == (1, 0)
