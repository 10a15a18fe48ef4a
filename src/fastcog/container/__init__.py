"""BigTIFF container layout: directories, tile tables and the builder."""

from .directory import (
    CURRENT_LAYOUT,
    LAYOUT_V1,
    LAYOUT_V2,
    DirectoryEntry,
    TagLayout,
    encode_directory,
    encode_header,
    parse_directory,
)
from .handles import PathHandlePool, StreamHandlePool
from .store import CogBuilder
from .table import TileTable

__all__ = [
    "CURRENT_LAYOUT",
    "LAYOUT_V1",
    "LAYOUT_V2",
    "DirectoryEntry",
    "TagLayout",
    "encode_directory",
    "encode_header",
    "parse_directory",
    "PathHandlePool",
    "StreamHandlePool",
    "CogBuilder",
    "TileTable",
]
