"""Exception types raised by fastcog."""

from __future__ import annotations


class CogError(Exception):
    """Base class for all fastcog errors."""


class GeometryError(CogError, ValueError):
    """The requested pyramid or directory layout cannot be represented.

    Raised at construction for tile-count overflow, an empty or oversized
    channel list, or a directory record that does not fit its slot.
    """


class ContainerIOError(CogError, OSError):
    """Reading, writing, seeking or flushing the container failed.

    The underlying ``OSError`` is attached as ``__cause__``.
    """


class ConsistencyError(CogError, RuntimeError):
    """The tracked end-of-file cursor disagrees with the container length.

    This means something appended to the container without going through
    the builder's append lock, usually a second writer.
    """


class TileDecodeError(CogError):
    """A compressed tile payload could not be decoded."""
