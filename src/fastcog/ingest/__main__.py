"""CLI entry point for fastcog."""

from __future__ import annotations

import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Callable

import click
import numpy as np
from PIL import Image
from tqdm import tqdm

from fastcog.codec import bytes_to_tile, decompress_tile
from fastcog.config import PARALLEL_TILES, TILE_SIZE
from fastcog.container.store import CogBuilder
from fastcog.core.errors import CogError
from fastcog.core.geometry import calculate_levels
from fastcog.core.types import TileCoord, TileState

from .tiles import ingest_tiles

logger = logging.getLogger(__name__)


_CONTAINER_OPTIONS = [
    click.option("--width", "-W", type=click.IntRange(1), required=True, help="Base width in pixels"),
    click.option("--height", "-H", type=click.IntRange(1), required=True, help="Base height in pixels"),
    click.option(
        "--bits",
        "-b",
        type=click.IntRange(1, 255),
        multiple=True,
        default=(8,),
        show_default=True,
        help="Bit depth per channel; repeat once per channel (1-8 channels)",
    ),
    click.option("--signed", is_flag=True, help="Samples are signed integers"),
    click.option("--nodata", default="", help="Nodata value recorded in the GDAL nodata tag"),
]


def _container_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options describing the container geometry, shared by several commands."""
    for option in reversed(_CONTAINER_OPTIONS):
        func = option(func)
    return func


def _open_builder(
    path: str,
    width: int,
    height: int,
    bits: tuple[int, ...],
    signed: bool,
    nodata: str,
    read_only: bool = True,
) -> CogBuilder:
    """Open a container, read-only unless ``read_only`` is False.

    Read-only opens never modify the file and fail on a container written
    with a different geometry or channel layout.
    """
    try:
        return CogBuilder(
            Path(path), width, height, bits, signed=signed, nodata=nodata, read_only=read_only
        )
    except CogError as e:
        _fail(f"Cannot open {path}: {e}")


def _fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Build and inspect incrementally written Cloud-Optimized BigTIFF pyramids."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("width", type=click.IntRange(1))
@click.argument("height", type=click.IntRange(1))
def levels(width: int, height: int) -> None:
    """Print the pyramid derived from WIDTH x HEIGHT."""
    try:
        pyramid = calculate_levels(width, height)
    except CogError as e:
        _fail(str(e))
    click.echo(click.style(f"{len(pyramid)} levels, {TILE_SIZE}px tiles", fg="cyan", bold=True))
    for info in pyramid:
        click.echo(
            f"  Level {info.level}: {info.width} x {info.height} px | "
            f"{info.cols} x {info.rows} = {info.tile_count} tiles"
        )


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@_container_options
def status(path: str, width: int, height: int, bits: tuple[int, ...], signed: bool, nodata: str) -> None:
    """Report which tiles of the container at PATH are present."""
    with _open_builder(path, width, height, bits, signed, nodata) as builder:
        click.echo(click.style(repr(builder), fg="cyan", bold=True))
        for info in builder.levels:
            counts = Counter(builder.tile_states(info.level))
            click.echo(
                f"  Level {info.level}: {info.width} x {info.height} px, {info.tile_count} tiles | "
                + click.style(f"{counts[TileState.WRITTEN]} written", fg="green")
                + ", "
                + click.style(f"{counts[TileState.NODATA]} nodata", fg="cyan")
                + ", "
                + click.style(f"{counts[TileState.UNWRITTEN]} unwritten", fg="yellow")
            )


@main.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.argument("tiles_dir", type=click.Path(exists=True, file_okay=False))
@_container_options
@click.option(
    "--missing-as-nodata",
    is_flag=True,
    help="Mark tiles without an image as explicitly empty",
)
@click.option(
    "--parallel",
    "-p",
    type=click.IntRange(1),
    default=PARALLEL_TILES,
    help=f"Compression threads (default: {PARALLEL_TILES})",
)
def ingest(
    path: str,
    tiles_dir: str,
    width: int,
    height: int,
    bits: tuple[int, ...],
    signed: bool,
    nodata: str,
    missing_as_nodata: bool,
    parallel: int,
) -> None:
    """Write tile images from TILES_DIR into the container at PATH.

    TILES_DIR holds one directory per level (0 = full resolution) with
    tiles named <col>_<row>.png. Lower levels must already be downsampled.
    Tiles already present in the container are skipped, so an interrupted
    ingest can simply be rerun.

    Examples:

        # RGB pyramid, 3 channels of 8 bits
        python -m fastcog ingest slide.tif ./tiles -W 40000 -H 30000 -b 8 -b 8 -b 8
    """
    with _open_builder(path, width, height, bits, signed, nodata, read_only=False) as builder:
        with tqdm(desc="Ingesting tiles", unit="tile") as pbar:

            def _progress(done: int, total: int) -> None:
                pbar.total = total
                pbar.update(1)

            try:
                summary = ingest_tiles(
                    builder,
                    Path(tiles_dir),
                    missing_as_nodata=missing_as_nodata,
                    parallel=parallel,
                    progress_callback=_progress,
                )
            except CogError as e:
                _fail(str(e))

    parts = [click.style(f"{summary.written} written", fg="green")]
    if summary.nodata:
        parts.append(click.style(f"{summary.nodata} nodata", fg="cyan"))
    if summary.skipped:
        parts.append(click.style(f"{summary.skipped} already present", fg="cyan"))
    if summary.missing:
        parts.append(click.style(f"{summary.missing} missing", fg="yellow"))
    if summary.errors:
        parts.append(click.style(f"{len(summary.errors)} failed", fg="red"))
    click.echo(click.style("Completed: ", bold=True) + ", ".join(parts))

    if summary.errors:
        click.echo(click.style("Failed tiles:", fg="red"))
        for coord, error in summary.errors:
            click.echo(f"  level {coord.level} ({coord.col}, {coord.row}): {error}")
        sys.exit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("level", type=click.IntRange(0))
@click.argument("col", type=click.IntRange(0))
@click.argument("row", type=click.IntRange(0))
@click.argument("output", type=click.Path(dir_okay=False))
@_container_options
def extract(
    path: str,
    level: int,
    col: int,
    row: int,
    output: str,
    width: int,
    height: int,
    bits: tuple[int, ...],
    signed: bool,
    nodata: str,
) -> None:
    """Decode tile (COL, ROW) of LEVEL and save it as an image at OUTPUT."""
    with _open_builder(path, width, height, bits, signed, nodata) as builder:
        if level >= builder.level_count():
            _fail(f"Level {level} out of range (0..{builder.level_count() - 1})")
        cols, rows = builder.tiles_across(level), builder.tiles_down(level)
        if col >= cols or row >= rows:
            _fail(f"Tile ({col}, {row}) out of range for level {level} ({cols} x {rows})")

        coord = TileCoord(level, col, row)
        payload = builder.read_tile(level, coord.index(cols))
        if payload is None:
            _fail(f"Tile {coord} is {builder.tile_state(level, coord.index(cols)).value}")

        try:
            tile = bytes_to_tile(decompress_tile(payload), bits, signed)
        except CogError as e:
            _fail(str(e))

        crop_w = min(TILE_SIZE, builder.width(level) - col * TILE_SIZE)
        crop_h = min(TILE_SIZE, builder.height(level) - row * TILE_SIZE)

    pixels = np.ascontiguousarray(tile[:crop_h, :crop_w])
    if pixels.shape[2] == 1:
        pixels = pixels[:, :, 0]
    Image.fromarray(pixels).save(output)
    click.echo(f"Saved {crop_w} x {crop_h} tile to {output}")


if __name__ == "__main__":
    main()
