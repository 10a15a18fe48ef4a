"""Binary BigTIFF header and directory records.

Each pyramid level is described by one directory (IFD) holding a fixed tag
list. Directory 0 follows the 16-byte header; directory ``k >= 1`` starts at
``1024 * k``. Every record is a ``<Q`` tag count, a run of 20-byte entries,
and a ``<Q`` link to the next directory::

    +------+------+--------+------------------+
    | id   | type | count  | value / offset   |
    | <H   | <H   | <Q     | 8 bytes          |
    +------+------+--------+------------------+

Values of at most 8 bytes are stored inline. The tile offset and byte-count
arrays of multi-tile levels live in the external table and are referenced by
absolute offset instead.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

from fastcog.config import (
    DIRECTORY_SLOT_SIZE,
    HEADER_SIZE,
    MAX_CHANNELS,
    MAX_DIRECTORY_SIZE,
    TILE_SIZE,
)
from fastcog.core.errors import GeometryError
from fastcog.core.types import UNWRITTEN_OFFSET, LevelInfo

HEADER = struct.Struct("<2sHHHQ")
COUNT = struct.Struct("<Q")
ENTRY = struct.Struct("<HHQ8s")

BIGTIFF_MAGIC = b"II"
BIGTIFF_VERSION = 43
BIGTIFF_OFFSET_SIZE = 8

# Tag ids
NEW_SUBFILE_TYPE = 254
IMAGE_WIDTH = 256
IMAGE_LENGTH = 257
BITS_PER_SAMPLE = 258
COMPRESSION = 259
PHOTOMETRIC = 262
SAMPLES_PER_PIXEL = 277
TILE_WIDTH = 322
TILE_LENGTH = 323
TILE_OFFSETS = 324
TILE_BYTE_COUNTS = 325
SAMPLE_FORMAT = 339
GDAL_NODATA = 42113

# Field types
BYTE = 1
ASCII = 2
SHORT = 3
LONG = 4
LONG8 = 16

COMPRESSION_LZW = 5
PHOTOMETRIC_MINISBLACK = 1
PHOTOMETRIC_RGB = 2
SAMPLE_FORMAT_UINT = 1
SAMPLE_FORMAT_INT = 2


@dataclass(frozen=True)
class TagLayout:
    """Ordered tag list of one format revision.

    The position of the tile offset and byte-count tags determines where a
    single-tile level keeps its inline entry, so the encoder and the table
    arithmetic must always share one layout.
    """

    revision: int
    tags: tuple[int, ...]

    def index_of(self, tag: int) -> int:
        return self.tags.index(tag)

    @property
    def offsets_index(self) -> int:
        return self.index_of(TILE_OFFSETS)

    @property
    def byte_counts_index(self) -> int:
        return self.index_of(TILE_BYTE_COUNTS)

    def with_nodata(self) -> TagLayout:
        """Layout with the GDAL nodata tag appended (indices of the rest unchanged)."""
        if GDAL_NODATA in self.tags:
            return self
        return TagLayout(self.revision, self.tags + (GDAL_NODATA,))


# Revision 1 shared one tile-size tag and kept tile offsets/sizes at 8/9.
# It is only ever parsed, never written.
LAYOUT_V1 = TagLayout(
    revision=1,
    tags=(
        NEW_SUBFILE_TYPE, IMAGE_WIDTH, IMAGE_LENGTH, BITS_PER_SAMPLE, COMPRESSION,
        PHOTOMETRIC, SAMPLES_PER_PIXEL, TILE_WIDTH, TILE_OFFSETS, TILE_BYTE_COUNTS,
        SAMPLE_FORMAT,
    ),
)

LAYOUT_V2 = TagLayout(
    revision=2,
    tags=(
        NEW_SUBFILE_TYPE, IMAGE_WIDTH, IMAGE_LENGTH, BITS_PER_SAMPLE, COMPRESSION,
        PHOTOMETRIC, SAMPLES_PER_PIXEL, TILE_WIDTH, TILE_LENGTH, TILE_OFFSETS,
        TILE_BYTE_COUNTS, SAMPLE_FORMAT,
    ),
)

#: Layout written by this version
CURRENT_LAYOUT = LAYOUT_V2


@dataclass(frozen=True)
class DirectoryEntry:
    """One decoded tag entry with its raw 8-byte value field."""

    tag: int
    type: int
    count: int
    raw: bytes

    def as_int(self) -> int:
        """Inline value (or external array offset) as an unsigned integer."""
        return int.from_bytes(self.raw, "little")


def directory_offset(level: int) -> int:
    """Absolute offset of a level's directory record."""
    return HEADER_SIZE if level == 0 else DIRECTORY_SLOT_SIZE * level


def inline_value_location(level: int, tag_index: int) -> int:
    """Absolute offset of the value field of the ``tag_index``-th entry."""
    return directory_offset(level) + COUNT.size + tag_index * ENTRY.size + 12


def encode_header() -> bytes:
    """16-byte little-endian BigTIFF header pointing at the first directory."""
    return HEADER.pack(BIGTIFF_MAGIC, BIGTIFF_VERSION, BIGTIFF_OFFSET_SIZE, 0, HEADER_SIZE)


def check_header(data: bytes) -> bool:
    """Whether ``data`` starts with the header written by :func:`encode_header`."""
    return len(data) >= HEADER.size and data[: HEADER.size] == encode_header()


def validate_bits_per_sample(bits_per_sample: Sequence[int]) -> tuple[int, ...]:
    """Normalise and check the per-channel bit depths.

    Raises:
        GeometryError: If the list is empty, too long, or holds a depth
            outside 1..255
    """
    bits = tuple(int(b) for b in bits_per_sample)
    if not 1 <= len(bits) <= MAX_CHANNELS:
        raise GeometryError(
            f"Expected 1..{MAX_CHANNELS} channel bit depths, got {len(bits)}"
        )
    for b in bits:
        if not 1 <= b <= 255:
            raise GeometryError(f"Channel bit depth must be in 1..255, got {b}")
    return bits


def _inline(value: int) -> bytes:
    return value.to_bytes(8, "little")


def _entry(tag: int, field_type: int, count: int, raw: bytes) -> bytes:
    return ENTRY.pack(tag, field_type, count, raw)


def encode_directory(
    info: LevelInfo,
    level_count: int,
    bits_per_sample: Sequence[int],
    signed: bool,
    table_offset: int,
    inline_entry: tuple[int, int] = (UNWRITTEN_OFFSET, 0),
    nodata: str | None = None,
) -> bytes:
    """Encode one level's directory record.

    Args:
        info: Geometry of the level
        level_count: Total number of levels (the last one has no next link)
        bits_per_sample: Bit depth of each channel
        signed: Whether samples are signed integers
        table_offset: Absolute offset of this level's offset table; the size
            table follows ``tile_count * 8`` bytes later
        inline_entry: (offset, size) stored inline when the level has a
            single tile
        nodata: Value for the GDAL nodata tag, or None to leave it out

    Returns:
        The encoded record (not padded to its slot)

    Raises:
        GeometryError: On invalid channel depths or an oversized record
    """
    bits = validate_bits_per_sample(bits_per_sample)
    tile_count = info.tile_count
    layout = CURRENT_LAYOUT if nodata is None else CURRENT_LAYOUT.with_nodata()

    if tile_count > 1:
        offsets_raw = _inline(table_offset)
        sizes_raw = _inline(table_offset + tile_count * 8)
    else:
        offsets_raw = _inline(inline_entry[0])
        sizes_raw = _inline(inline_entry[1])

    entries = {
        NEW_SUBFILE_TYPE: _entry(NEW_SUBFILE_TYPE, LONG, 1, _inline(0 if info.level == 0 else 1)),
        IMAGE_WIDTH: _entry(IMAGE_WIDTH, LONG, 1, _inline(info.width)),
        IMAGE_LENGTH: _entry(IMAGE_LENGTH, LONG, 1, _inline(info.height)),
        BITS_PER_SAMPLE: _entry(BITS_PER_SAMPLE, BYTE, len(bits), bytes(bits).ljust(8, b"\0")),
        COMPRESSION: _entry(COMPRESSION, LONG, 1, _inline(COMPRESSION_LZW)),
        PHOTOMETRIC: _entry(
            PHOTOMETRIC, LONG, 1,
            _inline(PHOTOMETRIC_RGB if len(bits) == 3 else PHOTOMETRIC_MINISBLACK),
        ),
        SAMPLES_PER_PIXEL: _entry(SAMPLES_PER_PIXEL, LONG, 1, _inline(len(bits))),
        TILE_WIDTH: _entry(TILE_WIDTH, LONG, 1, _inline(TILE_SIZE)),
        TILE_LENGTH: _entry(TILE_LENGTH, LONG, 1, _inline(TILE_SIZE)),
        TILE_OFFSETS: _entry(TILE_OFFSETS, LONG8, tile_count, offsets_raw),
        TILE_BYTE_COUNTS: _entry(TILE_BYTE_COUNTS, LONG8, tile_count, sizes_raw),
        SAMPLE_FORMAT: _entry(
            SAMPLE_FORMAT, SHORT, 1,
            _inline(SAMPLE_FORMAT_INT if signed else SAMPLE_FORMAT_UINT),
        ),
    }
    if nodata is not None:
        encoded = nodata.encode("ascii")
        if len(encoded) >= 8:
            raise GeometryError(f"Nodata value {nodata!r} does not fit inline")
        entries[GDAL_NODATA] = _entry(
            GDAL_NODATA, ASCII, len(encoded) + 1, encoded.ljust(8, b"\0")
        )

    next_offset = DIRECTORY_SLOT_SIZE * (info.level + 1) if info.level < level_count - 1 else 0

    record = bytearray(COUNT.pack(len(layout.tags)))
    for tag in layout.tags:
        record += entries[tag]
    record += COUNT.pack(next_offset)

    if len(record) > MAX_DIRECTORY_SIZE:
        raise GeometryError(
            f"Directory for level {info.level} is {len(record)} bytes, "
            f"limit is {MAX_DIRECTORY_SIZE}"
        )
    return bytes(record)


def parse_directory(record: bytes) -> dict[int, DirectoryEntry]:
    """Decode a directory record into its entries, keyed by tag id.

    Walks the fixed-stride entry array using the record's own tag count, so
    records from any format revision can be read.

    Raises:
        ValueError: If the record is truncated or its tag count is implausible
    """
    if len(record) < COUNT.size:
        raise ValueError("Directory record is truncated")
    (count,) = COUNT.unpack_from(record, 0)
    if COUNT.size + count * ENTRY.size > len(record):
        raise ValueError(f"Directory claims {count} tags, record only holds {len(record)} bytes")

    entries = {}
    for i in range(count):
        tag, field_type, value_count, raw = ENTRY.unpack_from(record, COUNT.size + i * ENTRY.size)
        entries[tag] = DirectoryEntry(tag, field_type, value_count, raw)
    return entries
