"""Loading pre-rendered tile images into a container.

Tiles are read from a directory laid out as ``<level>/<col>_<row>.png``
(level 0 = full resolution). Each level must already be downsampled by the
caller; this module only pads, compresses and stores tiles.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

import numpy as np
from PIL import Image

from fastcog.codec import compress_tile, tile_to_bytes
from fastcog.config import PARALLEL_TILES, TILE_IMAGE_EXTENSIONS
from fastcog.container.store import CogBuilder
from fastcog.core.types import TileCoord

logger = logging.getLogger(__name__)


@dataclass
class IngestSummary:
    """Outcome of one ingest run."""

    written: int = 0
    nodata: int = 0
    skipped: int = 0
    missing: int = 0
    errors: list[tuple[TileCoord, str]] = field(default_factory=list)


def find_tile_file(tiles_dir: Path, coord: TileCoord) -> Path | None:
    """Locate the image for a tile, trying each supported extension."""
    level_dir = tiles_dir / str(coord.level)
    for ext in TILE_IMAGE_EXTENSIONS:
        path = level_dir / f"{coord.col}_{coord.row}{ext}"
        if path.exists():
            return path
    return None


def load_tile_array(path: Path) -> np.ndarray:
    """Load a tile image as a (H, W) or (H, W, C) array."""
    with Image.open(path) as img:
        return np.asarray(img)


def encode_tile_file(path: Path, bits_per_sample: Sequence[int], signed: bool = False) -> bytes:
    """Load, pad and LZW-compress one tile image.

    Args:
        path: Tile image path
        bits_per_sample: Channel depths of the target container
        signed: Whether samples are signed

    Returns:
        Compressed payload ready for :meth:`CogBuilder.write_tile`
    """
    array = load_tile_array(path)
    return compress_tile(tile_to_bytes(array, bits_per_sample, signed))


def ingest_tiles(
    builder: CogBuilder,
    tiles_dir: Path,
    missing_as_nodata: bool = False,
    parallel: int = PARALLEL_TILES,
    progress_callback: Callable[[int, int], None] | None = None,
) -> IngestSummary:
    """Write every tile image found under ``tiles_dir`` into the container.

    Slots that are already valid are skipped, so an interrupted ingest can be
    rerun against the same container. Compression runs on a thread pool;
    appends happen on the calling thread only.

    Args:
        builder: Open container
        tiles_dir: Directory holding ``<level>/<col>_<row>.<ext>`` images
        missing_as_nodata: Mark slots without an image as nodata
        parallel: Number of compression threads
        progress_callback: Optional callback(done, total) per finished slot

    Returns:
        IngestSummary with per-outcome counts
    """
    tiles_dir = Path(tiles_dir)
    summary = IngestSummary()
    pending: dict[TileCoord, Path] = {}

    for info in builder.levels:
        mask = builder.valid_mask(info.level)
        for index, valid in enumerate(mask):
            coord = TileCoord(info.level, index % info.cols, index // info.cols)
            if valid:
                summary.skipped += 1
                continue
            path = find_tile_file(tiles_dir, coord)
            if path is not None:
                pending[coord] = path
            elif missing_as_nodata:
                builder.write_nodata_tile(info.level, index)
                summary.nodata += 1
            else:
                summary.missing += 1

    total = len(pending)
    logger.info(
        "Ingesting %d tiles into %s (%d already present)", total, builder.name, summary.skipped
    )
    if not pending:
        return summary

    done = 0
    with ThreadPoolExecutor(max_workers=max(1, parallel)) as executor:
        futures = {
            executor.submit(
                encode_tile_file, path, builder.bits_per_sample, builder.signed
            ): coord
            for coord, path in pending.items()
        }
        for future in as_completed(futures):
            coord = futures[future]
            try:
                payload = future.result()
            except (OSError, ValueError) as e:
                logger.error("Failed to encode tile %s: %s", coord, e)
                summary.errors.append((coord, str(e)))
            else:
                builder.write_tile(coord.level, coord.index(builder.tiles_across(coord.level)), payload)
                summary.written += 1
            done += 1
            if progress_callback:
                progress_callback(done, total)

    return summary
