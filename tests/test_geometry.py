"""Tests for pyramid geometry."""

from __future__ import annotations

import pytest

from fastcog.core.errors import GeometryError
from fastcog.core.geometry import calculate_levels, table_region_size, total_tiles
from fastcog.core.types import LevelInfo


class TestCalculateLevels:
    """Tests for level computation from base dimensions."""

    @pytest.mark.parametrize(
        "width, height, expected",
        [
            # 4096x4096 → 4096, 2048, 1024; the last level fits one tile
            (4096, 4096, [
                LevelInfo(level=0, width=4096, height=4096, cols=4, rows=4),
                LevelInfo(level=1, width=2048, height=2048, cols=2, rows=2),
                LevelInfo(level=2, width=1024, height=1024, cols=1, rows=1),
            ]),
            # Image fits in a single tile → 1 level
            (1024, 1024, [
                LevelInfo(level=0, width=1024, height=1024, cols=1, rows=1),
            ]),
            # Image smaller than a tile → 1 level
            (100, 7, [
                LevelInfo(level=0, width=100, height=7, cols=1, rows=1),
            ]),
            # Odd sizes use ceiling-halving: 3073→1537→769, 1025→513→257
            (3073, 1025, [
                LevelInfo(level=0, width=3073, height=1025, cols=4, rows=2),
                LevelInfo(level=1, width=1537, height=513, cols=2, rows=1),
                LevelInfo(level=2, width=769, height=257, cols=1, rows=1),
            ]),
            # Only one dimension over the tile size still adds levels
            (5000, 10, [
                LevelInfo(level=0, width=5000, height=10, cols=5, rows=1),
                LevelInfo(level=1, width=2500, height=5, cols=3, rows=1),
                LevelInfo(level=2, width=1250, height=3, cols=2, rows=1),
                LevelInfo(level=3, width=625, height=2, cols=1, rows=1),
            ]),
        ],
        ids=["4096x4096", "single-tile", "smaller-than-tile", "odd", "strip"],
    )
    def test_levels(self, width: int, height: int, expected: list[LevelInfo]) -> None:
        assert calculate_levels(width, height) == expected

    @pytest.mark.parametrize("width, height", [(1, 1), (1025, 1), (4097, 3000), (65535, 12345)])
    def test_levels_shrink_and_terminate(self, width: int, height: int) -> None:
        """Each level ceiling-halves the previous and the last fits one tile."""
        levels = calculate_levels(width, height)
        for prev, cur in zip(levels, levels[1:]):
            assert cur.width == (prev.width + 1) // 2
            assert cur.height == (prev.height + 1) // 2
            assert prev.width > 1024 or prev.height > 1024
        last = levels[-1]
        assert last.width <= 1024 and last.height <= 1024
        assert last.tile_count == 1

    @pytest.mark.parametrize("width, height", [(1, 1), (2049, 1023), (10000, 7777)])
    def test_tile_counts(self, width: int, height: int) -> None:
        for info in calculate_levels(width, height):
            assert info.cols == -(-info.width // 1024)
            assert info.rows == -(-info.height // 1024)
            assert info.tile_count == info.cols * info.rows

    def test_downsample(self) -> None:
        levels = calculate_levels(4096, 4096)
        assert [l.downsample for l in levels] == [1, 2, 4]

    def test_custom_tile_size(self) -> None:
        levels = calculate_levels(1024, 1024, tile_size=256)
        assert [(l.width, l.cols) for l in levels] == [(1024, 4), (512, 2), (256, 1)]

    def test_tile_count_overflow(self) -> None:
        """A level needing more than 2**32 - 1 tiles is rejected."""
        with pytest.raises(GeometryError, match="tiles"):
            calculate_levels(2**32 - 1, 2**32 - 1)

    @pytest.mark.parametrize("width, height", [(0, 10), (10, 0), (-5, 10), (2**32, 1)])
    def test_invalid_dimensions(self, width: int, height: int) -> None:
        with pytest.raises(GeometryError):
            calculate_levels(width, height)


class TestRegionSize:
    """Tests for the header + table region size."""

    def test_4096_region(self) -> None:
        levels = calculate_levels(4096, 4096)
        assert total_tiles(levels) == 21
        # 3 directory slots + 16 bytes per tile, including the inline level
        assert table_region_size(levels) == 3 * 1024 + 21 * 16

    def test_single_level_region(self) -> None:
        assert table_region_size(calculate_levels(512, 512)) == 1024 + 16
