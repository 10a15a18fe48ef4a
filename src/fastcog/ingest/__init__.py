"""Ingesting pre-rendered tile images into containers."""

from .tiles import (
    IngestSummary,
    encode_tile_file,
    find_tile_file,
    ingest_tiles,
    load_tile_array,
)

__all__ = [
    "IngestSummary",
    "encode_tile_file",
    "find_tile_file",
    "ingest_tiles",
    "load_tile_array",
]
