"""Incrementally written Cloud-Optimized BigTIFF pyramids.

Container layout::

    0      header (16 bytes) + level 0 directory
    1024   level 1 directory
    ...    one 1024-byte directory slot per level
    1024*L offset/size tables, level by level
    ...    tile payloads, appended in write order

Tile slots are tri-state. An offset of 1 means the slot was never written,
an offset of 0 means it was explicitly written as empty, anything else is
the absolute position of the payload. Appending a tile writes the payload,
then its size, then its offset, flushing after each metadata write, so an
interrupted write leaves the slot unwritten rather than half-recorded.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Sequence

import numpy as np

from fastcog.config import EMIT_NODATA_TAG, FSYNC_WRITES, TABLE_ENTRY_SIZE
from fastcog.core.errors import ConsistencyError, ContainerIOError, GeometryError
from fastcog.core.geometry import calculate_levels, total_tiles
from fastcog.core.types import NODATA_OFFSET, UNWRITTEN_OFFSET, LevelInfo, TileState

from .directory import (
    BITS_PER_SAMPLE,
    IMAGE_LENGTH,
    IMAGE_WIDTH,
    SAMPLE_FORMAT,
    SAMPLES_PER_PIXEL,
    TILE_BYTE_COUNTS,
    TILE_OFFSETS,
    check_header,
    directory_offset,
    encode_directory,
    encode_header,
    parse_directory,
    validate_bits_per_sample,
)
from .handles import HandlePool, PathHandlePool, StreamHandlePool
from .table import U64, TileTable

logger = logging.getLogger(__name__)

_ENTRY_DTYPE = np.dtype("<u8")

# Tags a read-only open checks against the requested image
_DESCRIPTIVE_TAGS = {
    IMAGE_WIDTH: "ImageWidth",
    IMAGE_LENGTH: "ImageLength",
    BITS_PER_SAMPLE: "BitsPerSample",
    SAMPLES_PER_PIXEL: "SamplesPerPixel",
    SAMPLE_FORMAT: "SampleFormat",
}


class CogBuilder:
    """Creates or resumes a tiled pyramid container and writes tiles into it.

    Geometry is derived from ``width``/``height`` every time the container is
    opened. Reopening an existing container with different dimensions or
    channel layout than the run that created it is not supported.

    Reads (:meth:`read_tile`, :meth:`valid_mask`, :meth:`tile_state`) may run
    from any number of threads. Appends are serialised internally, but a
    second writer appending to the same file from elsewhere is detected and
    raises :class:`ConsistencyError`.

    Args:
        target: Container path, or an open seekable binary stream
        width: Base level width in pixels
        height: Base level height in pixels
        bits_per_sample: Bit depth of each channel (1-8 channels)
        signed: Whether samples are signed integers
        nodata: Nodata value for the GDAL nodata tag
        emit_nodata: Write the nodata tag (only when ``nodata`` is set)
        fsync: fsync after each metadata flush (path targets only)
        read_only: Open an existing container without writing anything. The
            stored directories must match the given geometry and channel
            layout, and the write methods are refused.

    Raises:
        GeometryError: If the pyramid or a directory cannot be represented
            (or, when ``read_only``, does not match the stored directories)
        ContainerIOError: If the container cannot be read or written
    """

    def __init__(
        self,
        target: str | os.PathLike | BinaryIO,
        width: int,
        height: int,
        bits_per_sample: Sequence[int],
        signed: bool = False,
        nodata: str = "",
        *,
        emit_nodata: bool = EMIT_NODATA_TAG,
        fsync: bool = FSYNC_WRITES,
        read_only: bool = False,
    ) -> None:
        self._levels = calculate_levels(width, height)
        self.bits_per_sample = validate_bits_per_sample(bits_per_sample)
        self.signed = signed
        self.nodata = nodata
        self._nodata_tag = nodata if emit_nodata and nodata else None
        self.read_only = read_only
        self._table = TileTable(self._levels)

        # Encode once up front so a bad layout fails before the file is touched
        self._encode_directories({})

        if isinstance(target, (str, os.PathLike)):
            self.name = Path(target).name
            with self._io_errors("open"):
                self._pool: HandlePool = PathHandlePool(target, fsync=fsync, read_only=read_only)
        else:
            self.name = getattr(target, "name", type(target).__name__)
            self._pool = StreamHandlePool(target)

        self._append_lock = threading.Lock()
        try:
            with self._io_errors("initialize"):
                self.file_size = self._initialize()
        except BaseException:
            self._pool.close()
            raise

    # ------------------------------------------------------------------
    # Creation / resumption
    # ------------------------------------------------------------------

    def _initialize(self) -> int:
        """Write or refresh the header region and return the end-of-file cursor."""
        current = self._pool.length()
        region_size = self._table.region_size

        if self.read_only:
            self._check_stored_directories(current)
            logger.info("Opened %s read-only: %d bytes", self.name, current)
            return current

        if current < region_size:
            logger.info(
                "Creating %s: %d levels, %d tiles, %d-byte header region",
                self.name, len(self._levels), total_tiles(self._levels), region_size,
            )
            self._pool.pwrite(
                0, self._encode_directories({}) + self._table.initial_table_bytes()
            )
            self._pool.flush()
            return region_size

        old_region = self._pool.pread(0, self._table.directories_size)
        if not check_header(old_region):
            logger.warning("%s has an unexpected header, rewriting it", self.name)

        inline_entries = {}
        for info in self._levels:
            if self._table.is_inline(info.level):
                inline_entries[info.level] = self._recover_inline_entry(
                    old_region, info.level, current
                )

        self._pool.pwrite(0, self._encode_directories(inline_entries))
        self._pool.flush()
        logger.info(
            "Resumed %s: %d levels, %d bytes already written",
            self.name, len(self._levels), current,
        )
        return current

    def _check_stored_directories(self, length: int) -> None:
        """Refuse a container whose directories describe another image."""
        region_size = self._table.region_size
        if length < region_size:
            raise ContainerIOError(
                f"{self.name} is {length} bytes, smaller than the {region_size}-byte "
                "header region of this geometry"
            )
        stored = self._pool.pread(0, self._table.directories_size)
        if not check_header(stored):
            raise ContainerIOError(f"{self.name} does not start with a BigTIFF header")

        expected = self._encode_directories({})
        for info in self._levels:
            try:
                entries = parse_directory(self._directory_record(stored, info.level))
            except ValueError as e:
                raise ContainerIOError(
                    f"Unreadable directory for level {info.level} in {self.name}: {e}"
                ) from e
            wanted = parse_directory(self._directory_record(expected, info.level))
            for tag, name in _DESCRIPTIVE_TAGS.items():
                found = entries.get(tag)
                if found is None or (found.count, found.raw) != (wanted[tag].count, wanted[tag].raw):
                    raise GeometryError(
                        f"{name} of level {info.level} in {self.name} does not match "
                        f"the requested {self!r}"
                    )

    def _directory_record(self, region: bytes, level: int) -> bytes:
        start = directory_offset(level)
        end = self._table.directories_size if level == len(self._levels) - 1 else directory_offset(level + 1)
        return region[start:end]

    def _recover_inline_entry(self, old_region: bytes, level: int, length: int) -> tuple[int, int]:
        """Read a single-tile level's (offset, size) from its previous directory."""
        try:
            entries = parse_directory(self._directory_record(old_region, level))
        except ValueError as e:
            logger.warning("Unreadable directory for level %d in %s: %s", level, self.name, e)
            return UNWRITTEN_OFFSET, 0

        offsets = entries.get(TILE_OFFSETS)
        sizes = entries.get(TILE_BYTE_COUNTS)
        if offsets is None or sizes is None or offsets.count != 1 or sizes.count != 1:
            logger.warning("No inline tile entry for level %d in %s", level, self.name)
            return UNWRITTEN_OFFSET, 0

        offset, size = offsets.as_int(), sizes.as_int()
        if offset in (UNWRITTEN_OFFSET, NODATA_OFFSET):
            return offset, 0
        if offset < self._table.region_size or offset + size > length or size == 0:
            logger.warning(
                "Discarding out-of-range inline entry (%d, %d) for level %d in %s",
                offset, size, level, self.name,
            )
            return UNWRITTEN_OFFSET, 0
        logger.debug("Recovered level %d tile at %d (%d bytes)", level, offset, size)
        return offset, size

    def _encode_directories(self, inline_entries: dict[int, tuple[int, int]]) -> bytes:
        """Header plus every directory record, each padded to its slot."""
        region = bytearray(encode_header())
        for info in self._levels:
            region += bytes(directory_offset(info.level) - len(region))
            region += encode_directory(
                info,
                len(self._levels),
                self.bits_per_sample,
                self.signed,
                self._table.table_offset(info.level),
                inline_entries.get(info.level, (UNWRITTEN_OFFSET, 0)),
                self._nodata_tag,
            )
        region += bytes(self._table.directories_size - len(region))
        return bytes(region)

    # ------------------------------------------------------------------
    # Geometry accessors
    # ------------------------------------------------------------------

    @property
    def levels(self) -> list[LevelInfo]:
        return list(self._levels)

    def level_count(self) -> int:
        return len(self._levels)

    def width(self, level: int) -> int:
        return self._levels[level].width

    def height(self, level: int) -> int:
        return self._levels[level].height

    def tiles_across(self, level: int) -> int:
        return self._levels[level].cols

    def tiles_down(self, level: int) -> int:
        return self._levels[level].rows

    def tile_count(self, level: int) -> int:
        return self._levels[level].tile_count

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write_tile(self, level: int, index: int, data: bytes) -> None:
        """Append a compressed tile and record it in its slot.

        Args:
            level: Pyramid level
            index: Row-major tile index within the level
            data: Compressed tile payload (must not be empty)

        Raises:
            IndexError: If the slot does not exist
            ValueError: If ``data`` is empty
            ConsistencyError: If the container grew behind the builder's back
            ContainerIOError: On any I/O failure, or if the builder is read-only
        """
        self._check_writable()
        self._check_slot(level, index)
        payload = data if isinstance(data, bytes) else bytes(data)
        if not payload:
            raise ValueError("Tile payload must not be empty; use write_nodata_tile")
        offset_location, size_location = self._table.locations(level, index)

        with self._append_lock, self._io_errors(f"write tile {level}/{index} to"):
            file_end = self._pool.length()
            if file_end != self.file_size:
                raise ConsistencyError(
                    f"{self.name} is {file_end} bytes but {self.file_size} were expected; "
                    "another writer appended to it"
                )

            try:
                offset = self._pool.append(payload)
            except OSError:
                # A partial append leaves unreferenced bytes past the cursor
                self.file_size = self._pool.length()
                raise
            # Unreferenced until its offset lands
            self.file_size = offset + len(payload)

            self._pool.pwrite(size_location, U64.pack(len(payload)))
            self._pool.flush()

            self._pool.pwrite(offset_location, U64.pack(offset))
            self._pool.flush()
        logger.debug("Wrote tile %d/%d at %d (%d bytes)", level, index, offset, len(payload))

    def write_nodata_tile(self, level: int, index: int) -> None:
        """Mark a slot as explicitly empty without appending anything.

        Raises:
            IndexError: If the slot does not exist
            ContainerIOError: On any I/O failure, or if the builder is read-only
        """
        self._check_writable()
        self._check_slot(level, index)
        offset_location, _ = self._table.locations(level, index)
        with self._io_errors(f"mark tile {level}/{index} empty in"):
            self._pool.pwrite(offset_location, U64.pack(NODATA_OFFSET))
            self._pool.flush()
        logger.debug("Marked tile %d/%d as nodata", level, index)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read_tile(self, level: int, index: int) -> bytes | None:
        """Read a tile's compressed payload.

        Returns:
            The payload, or None if the slot is out of range, unwritten or
            nodata
        """
        if not 0 <= level < len(self._levels):
            return None
        if not 0 <= index < self._levels[level].tile_count:
            return None

        offset_location, size_location = self._table.locations(level, index)
        with self._io_errors(f"read tile {level}/{index} from"):
            size = self._read_u64(size_location)
            if size == 0:
                return None
            offset = self._read_u64(offset_location)
            # Size lands before offset, so a concurrent append may show a
            # size while the offset is still the sentinel
            if offset in (UNWRITTEN_OFFSET, NODATA_OFFSET):
                return None
            data = self._pool.pread(offset, size)
        if len(data) != size:
            raise ContainerIOError(
                f"Tile {level}/{index} in {self.name} is truncated: "
                f"expected {size} bytes at {offset}, got {len(data)}"
            )
        return data

    def valid_mask(self, level: int) -> list[bool]:
        """Per-tile flags, True where the slot was written or marked nodata."""
        offsets, _ = self._read_entries(level, sizes=False)
        return (offsets != UNWRITTEN_OFFSET).tolist()

    def tile_state(self, level: int, index: int) -> TileState:
        self._check_slot(level, index)
        offset_location, size_location = self._table.locations(level, index)
        with self._io_errors(f"read slot {level}/{index} from"):
            offset = self._read_u64(offset_location)
            size = self._read_u64(size_location)
        return TileState.from_entry(offset, size)

    def tile_states(self, level: int) -> list[TileState]:
        """State of every slot of a level, in tile index order."""
        offsets, sizes = self._read_entries(level, sizes=True)
        return [TileState.from_entry(int(o), int(s)) for o, s in zip(offsets, sizes)]

    def _read_entries(self, level: int, sizes: bool) -> tuple[np.ndarray, np.ndarray | None]:
        if not 0 <= level < len(self._levels):
            raise IndexError(f"Level {level} out of range (0..{len(self._levels) - 1})")
        count = self._levels[level].tile_count
        offset_location, size_location = self._table.locations(level, 0)
        nbytes = count * TABLE_ENTRY_SIZE
        with self._io_errors(f"read level {level} table from"):
            offsets = self._pool.pread(offset_location, nbytes)
            size_data = self._pool.pread(size_location, nbytes) if sizes else None
        if len(offsets) != nbytes or (size_data is not None and len(size_data) != nbytes):
            raise ContainerIOError(f"Tile table for level {level} in {self.name} is truncated")
        return (
            np.frombuffer(offsets, dtype=_ENTRY_DTYPE),
            None if size_data is None else np.frombuffer(size_data, dtype=_ENTRY_DTYPE),
        )

    def _read_u64(self, location: int) -> int:
        data = self._pool.pread(location, U64.size)
        if len(data) != U64.size:
            raise ContainerIOError(f"{self.name} is truncated at {location}")
        return U64.unpack(data)[0]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_writable(self) -> None:
        if self.read_only:
            raise ContainerIOError(f"{self.name} was opened read-only")

    def _check_slot(self, level: int, index: int) -> None:
        if not 0 <= level < len(self._levels):
            raise IndexError(f"Level {level} out of range (0..{len(self._levels) - 1})")
        count = self._levels[level].tile_count
        if not 0 <= index < count:
            raise IndexError(f"Tile {index} out of range for level {level} ({count} tiles)")

    @contextlib.contextmanager
    def _io_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except ContainerIOError:
            raise
        except OSError as e:
            raise ContainerIOError(f"Failed to {action} {self.name}: {e}") from e

    def close(self) -> None:
        """Close every handle this builder opened."""
        self._pool.close()

    def __enter__(self) -> CogBuilder:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        base = self._levels[0]
        return (
            f"CogBuilder({self.name!r}, {base.width}x{base.height}, "
            f"levels={len(self._levels)}, bits={list(self.bits_per_sample)})"
        )
