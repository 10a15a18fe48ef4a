"""Centralized configuration for fastcog.

Format constants are fixed by the container layout and must not change
between runs that share a file. Runtime behaviour can be tuned via
environment variables.

Environment Variables:
    FASTCOG_FSYNC: fsync the container after each metadata flush (default: 0)
    FASTCOG_EMIT_NODATA_TAG: emit the GDAL nodata tag in directories (default: 0)
    FASTCOG_PARALLEL_TILES: compression workers used by the ingest CLI (default: 4)
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _get_env_int(name: str, default: int) -> int:
    """Get an integer from environment variable with fallback."""
    value = os.environ.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid integer for %s: %r, using default %d", name, value, default
            )
    return default


def _get_env_bool(name: str, default: bool) -> bool:
    """Get a boolean from environment variable with fallback."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# =============================================================================
# Container Format
# =============================================================================

#: Edge length of every tile in pixels
TILE_SIZE: int = 1024

#: Size of the BigTIFF header at the start of the container
HEADER_SIZE: int = 16

#: Bytes reserved per level for its directory record (level 0 shares its slot with the header)
DIRECTORY_SLOT_SIZE: int = 1024

#: Largest encoded directory record accepted
MAX_DIRECTORY_SIZE: int = 1000

#: Largest number of channels a pixel may carry
MAX_CHANNELS: int = 8

#: Bytes per table entry (offsets and sizes are both little-endian u64)
TABLE_ENTRY_SIZE: int = 8

#: Largest tile count a single level may address
MAX_TILES_PER_LEVEL: int = 2**32 - 1

#: Largest width or height accepted for the base level
MAX_DIMENSION: int = 2**32 - 1


# =============================================================================
# Durability / Feature Flags
# =============================================================================

#: fsync after each flushed metadata write (slower, survives power loss)
FSYNC_WRITES: bool = _get_env_bool("FASTCOG_FSYNC", False)

#: Emit the reserved GDAL nodata tag after SampleFormat
EMIT_NODATA_TAG: bool = _get_env_bool("FASTCOG_EMIT_NODATA_TAG", False)


# =============================================================================
# Ingest CLI
# =============================================================================

#: Worker threads used to compress tiles before they are appended
PARALLEL_TILES: int = _get_env_int("FASTCOG_PARALLEL_TILES", 4)

#: Tile image extensions picked up from a tiles directory
TILE_IMAGE_EXTENSIONS: tuple[str, ...] = (".png", ".tif", ".tiff")


# =============================================================================
# Validation
# =============================================================================


def _validate_config() -> None:
    """Validate configuration values and log warnings for out-of-range settings."""
    global PARALLEL_TILES

    if PARALLEL_TILES < 1:
        logger.warning("PARALLEL_TILES=%d is too low, clamping to 1", PARALLEL_TILES)
        PARALLEL_TILES = 1


_validate_config()
