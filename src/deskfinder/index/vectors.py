"""In-memory vector index with brute-force cosine search."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, List

import numpy as np

if TYPE_CHECKING:
    from deskfinder.index.storage import SQLiteFileStore

LOGGER = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.35
TOP_K = 10

# Vectors live on disk as little-endian float32 arrays.
VECTOR_DTYPE = np.dtype("<f4")


def encode_vector(vector: np.ndarray | List[float]) -> bytes:
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    if len(blob) % VECTOR_DTYPE.itemsize:
        raise ValueError(f"Vector blob length {len(blob)} is not a multiple of 4")
    return np.frombuffer(blob, dtype=VECTOR_DTYPE).astype(np.float32)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two unit vectors; 0.0 when dimensions differ."""
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    if a.shape != b.shape:
        return 0.0
    return float(np.dot(a, b))


@dataclass(slots=True, frozen=True)
class _Snapshot:
    file_ids: np.ndarray
    chunk_indices: np.ndarray
    matrix: np.ndarray

    @property
    def size(self) -> int:
        return int(self.file_ids.shape[0])


_EMPTY = _Snapshot(
    file_ids=np.empty(0, dtype=np.int64),
    chunk_indices=np.empty(0, dtype=np.int64),
    matrix=np.empty((0, 0), dtype=np.float32),
)


class VectorIndex:
    """RAM mirror of every stored vector.

    Searches read one immutable snapshot; ``load`` builds a new snapshot off
    to the side and swaps it in whole, so a search never sees a half-built
    index.
    """

    def __init__(self) -> None:
        self._snapshot = _EMPTY
        self._swap_lock = threading.Lock()

    def __len__(self) -> int:
        return self._snapshot.size

    @property
    def dimension(self) -> int:
        return int(self._snapshot.matrix.shape[1]) if self._snapshot.size else 0

    def load(self, store: SQLiteFileStore) -> int:
        """Rebuild from the store and replace the current contents."""
        started = time.perf_counter()
        file_ids: list[int] = []
        chunk_indices: list[int] = []
        vectors: list[np.ndarray] = []
        dimension = 0

        for file_id, chunk_index, blob in store.iter_vectors():
            try:
                vector = decode_vector(blob)
            except ValueError as exc:
                LOGGER.warning("Skipping vector for file %s: %s", file_id, exc)
                continue
            if dimension == 0:
                dimension = vector.shape[0]
            elif vector.shape[0] != dimension:
                LOGGER.warning(
                    "Skipping vector for file %s: dimension %d != %d",
                    file_id,
                    vector.shape[0],
                    dimension,
                )
                continue
            file_ids.append(file_id)
            chunk_indices.append(chunk_index)
            vectors.append(vector)

        if vectors:
            snapshot = _Snapshot(
                file_ids=np.asarray(file_ids, dtype=np.int64),
                chunk_indices=np.asarray(chunk_indices, dtype=np.int64),
                matrix=np.vstack(vectors),
            )
        else:
            snapshot = _EMPTY

        with self._swap_lock:
            self._snapshot = snapshot

        LOGGER.info(
            "Loaded %d vectors into memory in %.2fs",
            snapshot.size,
            time.perf_counter() - started,
        )
        return snapshot.size

    def clear(self) -> None:
        with self._swap_lock:
            self._snapshot = _EMPTY

    def search(
        self,
        query: np.ndarray,
        *,
        threshold: float = SIMILARITY_THRESHOLD,
        top_k: int = TOP_K,
    ) -> list[tuple[int, float]]:
        """Return ``(file_id, best chunk score)`` pairs, best first."""
        snapshot = self._snapshot
        if snapshot.size == 0:
            return []

        query = np.asarray(query, dtype=np.float32)
        if query.shape != (snapshot.matrix.shape[1],):
            raise ValueError(
                f"Query dimension {query.shape} does not match index dimension "
                f"{snapshot.matrix.shape[1]}"
            )

        scores = snapshot.matrix @ query
        best: dict[int, float] = {}
        for idx in np.flatnonzero(scores > threshold):
            file_id = int(snapshot.file_ids[idx])
            score = float(scores[idx])
            if score > best.get(file_id, -np.inf):
                best[file_id] = score

        matches = sorted(best.items(), key=lambda item: item[1], reverse=True)
        return matches[:top_k]
