"""Positioned I/O over a container, one handle per thread.

Threads never share a file cursor: :class:`PathHandlePool` lazily opens a
private unbuffered handle for each thread that touches the container. When
the caller hands over an already-open stream instead of a path there is only
one cursor, so :class:`StreamHandlePool` serialises every operation on it.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, ContextManager

from fastcog.config import FSYNC_WRITES

logger = logging.getLogger(__name__)


class HandlePool(ABC):
    """Positioned read/write primitives shared by both pool flavours."""

    def __init__(self, fsync: bool = FSYNC_WRITES) -> None:
        self.fsync = fsync

    @abstractmethod
    def _handle(self) -> BinaryIO:
        """Handle to use for the calling thread."""
        ...

    def _guard(self) -> ContextManager:
        return contextlib.nullcontext()

    def pread(self, offset: int, size: int) -> bytes:
        """Read up to ``size`` bytes at ``offset`` (short only at end of file)."""
        with self._guard():
            handle = self._handle()
            handle.seek(offset)
            chunks = []
            remaining = size
            while remaining > 0:
                chunk = handle.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
            return b"".join(chunks)

    def pwrite(self, offset: int, data: bytes) -> None:
        with self._guard():
            handle = self._handle()
            handle.seek(offset)
            self._write_all(handle, data)

    def append(self, data: bytes) -> int:
        """Write ``data`` at the current end of the container.

        Returns:
            Offset the data was written at
        """
        with self._guard():
            handle = self._handle()
            end = handle.seek(0, os.SEEK_END)
            self._write_all(handle, data)
            return end

    def length(self) -> int:
        with self._guard():
            return self._handle().seek(0, os.SEEK_END)

    def flush(self) -> None:
        with self._guard():
            handle = self._handle()
            handle.flush()
            if self.fsync:
                os.fsync(handle.fileno())

    @staticmethod
    def _write_all(handle: BinaryIO, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = handle.write(view)
            if written is None:
                raise BlockingIOError("Container handle would block")
            view = view[written:]

    @abstractmethod
    def close(self) -> None:
        """Release every handle the pool opened."""
        ...


class PathHandlePool(HandlePool):
    """Per-thread handles opened independently on one path.

    Handles are unbuffered so a thread never serves a table entry from a
    stale read buffer after another thread rewrote it. Handles owned by
    threads that have exited are closed the next time a thread opens one.

    Args:
        path: Container path; created empty if missing unless ``read_only``
        fsync: fsync on every flush
        read_only: Open handles without write access
    """

    def __init__(
        self,
        path: str | os.PathLike,
        fsync: bool = FSYNC_WRITES,
        read_only: bool = False,
    ) -> None:
        super().__init__(fsync)
        self.path = Path(path)
        self.read_only = read_only
        self._local = threading.local()
        self._lock = threading.Lock()
        self._handles: dict[threading.Thread, BinaryIO] = {}
        self._closed = False

        if read_only:
            if not self.path.is_file():
                raise FileNotFoundError(f"Container not found: {self.path}")
        else:
            # r+b cannot create, so make sure the file exists first
            with open(self.path, "ab"):
                pass

    @property
    def handle_count(self) -> int:
        """Number of handles currently open."""
        with self._lock:
            return len(self._handles)

    def _handle(self) -> BinaryIO:
        handle = getattr(self._local, "handle", None)
        if handle is None:
            thread = threading.current_thread()
            with self._lock:
                if self._closed:
                    raise ValueError(f"Container {self.path} is closed")
                self._reap_dead_threads()
                handle = open(self.path, "rb" if self.read_only else "r+b", buffering=0)
                self._handles[thread] = handle
            self._local.handle = handle
            logger.debug("Opened handle for %s on thread %s", self.path.name, thread.name)
        return handle

    def _reap_dead_threads(self) -> None:
        """Close handles of exited threads. Caller holds ``_lock``."""
        dead = [thread for thread in self._handles if not thread.is_alive()]
        for thread in dead:
            self._handles.pop(thread).close()
        if dead:
            logger.debug("Closed %d handles of exited threads on %s", len(dead), self.path.name)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            handles, self._handles = list(self._handles.values()), {}
        for handle in handles:
            handle.close()


class StreamHandlePool(HandlePool):
    """A single caller-owned stream shared by every thread.

    The stream is left open by :meth:`close`; its owner closes it.
    """

    def __init__(self, stream: BinaryIO, fsync: bool = False) -> None:
        super().__init__(fsync)
        self.stream = stream
        self.lock = threading.RLock()

    def _handle(self) -> BinaryIO:
        return self.stream

    def _guard(self) -> ContextManager:
        return self.lock

    def close(self) -> None:
        pass
