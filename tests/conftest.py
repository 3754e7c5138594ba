"""Shared fixtures."""

from __future__ import annotations

import os
import zlib
from pathlib import Path

import numpy as np
import pytest

from deskfinder.index.storage import SQLiteFileStore
from deskfinder.utils.text import iter_terms


class FakeEmbedder:
    """Deterministic bag-of-words embedder producing unit vectors."""

    def __init__(self, dimension: int = 4096, ready: bool = True) -> None:
        self.dimension = dimension
        self.is_ready = ready
        self.calls: list[str] = []

    def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        vector = np.zeros(self.dimension, dtype=np.float32)
        for term in iter_terms(text.lower()):
            vector[zlib.crc32(term.encode()) % self.dimension] += 1.0
        norm = np.linalg.norm(vector)
        if norm == 0:
            vector[0] = 1.0
            return vector
        return vector / norm


@pytest.fixture
def store(tmp_path: Path):
    """Create a temporary database for testing."""
    db = SQLiteFileStore(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


def write_file(path: Path, text: str = "", mtime: int | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
