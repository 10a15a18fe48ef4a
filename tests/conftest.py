"""Test fixtures for fastcog tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import numpy as np
import pytest

from fastcog.container.store import CogBuilder


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def container_path(temp_dir: Path) -> Path:
    return temp_dir / "pyramid.tif"


@pytest.fixture
def builder_4k(container_path: Path) -> Generator[CogBuilder, None, None]:
    """4096x4096 single 8-bit channel container: 3 levels of 16, 4 and 1 tiles."""
    builder = CogBuilder(container_path, 4096, 4096, [8])
    yield builder
    builder.close()


@pytest.fixture
def sample_gray_array() -> np.ndarray:
    """2048x1024 grayscale image with a distinct pattern per tile."""
    img = np.zeros((1024, 2048), dtype=np.uint8)

    # Left tile: horizontal gradient
    img[:, 0:1024] = (np.arange(1024) % 256).astype(np.uint8)[np.newaxis, :]

    # Right tile: vertical stripes
    img[:, 1024:2048:8] = 200

    return img
