"""Tests for the in-memory vector index."""

from __future__ import annotations

import os
import threading

import numpy as np
import pytest

from deskfinder.index.storage import SQLiteFileStore
from deskfinder.index.vectors import (
    VectorIndex,
    cosine_similarity,
    decode_vector,
    encode_vector,
)


def _unit(*values: float) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float32)
    return vector / np.linalg.norm(vector)


def _file(store: SQLiteFileStore, path: str) -> int:
    with store.transaction():
        store.insert_file(path, os.path.basename(path), ".txt", 1, summary="text")
    return store.get_file(path).id


class TestVectorCodec:
    def test_little_endian_float32(self) -> None:
        blob = encode_vector([1.0, -2.5])

        assert blob == np.asarray([1.0, -2.5], dtype="<f4").tobytes()
        assert len(blob) == 8
        assert decode_vector(blob).tolist() == [1.0, -2.5]

    def test_bad_length(self) -> None:
        with pytest.raises(ValueError):
            decode_vector(b"\x00\x00\x80")


class TestCosineSimilarity:
    def test_bounds(self) -> None:
        a = _unit(1.0, 2.0, 3.0)

        assert cosine_similarity(a, a) == pytest.approx(1.0)
        assert cosine_similarity(a, -a) == pytest.approx(-1.0)
        assert cosine_similarity(_unit(1.0, 0.0), _unit(0.0, 1.0)) == pytest.approx(0.0)

    def test_dimension_mismatch(self) -> None:
        assert cosine_similarity(_unit(1.0, 0.0), _unit(1.0, 0.0, 0.0)) == 0.0


class TestVectorIndex:
    """Test VectorIndex load and search."""

    def test_empty(self) -> None:
        index = VectorIndex()

        assert len(index) == 0
        assert index.dimension == 0
        assert index.search(_unit(1.0, 0.0)) == []

    def test_threshold_and_order(self, store: SQLiteFileStore) -> None:
        near = _file(store, "/d/near.txt")
        close = _file(store, "/d/close.txt")
        far = _file(store, "/d/far.txt")
        with store.transaction():
            store.save_vector(near, 0, _unit(1.0, 0.1))
            store.save_vector(close, 0, _unit(1.0, 0.8))
            store.save_vector(far, 0, _unit(0.0, 1.0))
        index = VectorIndex()

        assert index.load(store) == 3
        matches = index.search(_unit(1.0, 0.0))

        assert [file_id for file_id, _ in matches] == [near, close]
        assert all(score > 0.35 for _, score in matches)

    def test_best_chunk_per_file(self, store: SQLiteFileStore) -> None:
        file_id = _file(store, "/d/a.txt")
        with store.transaction():
            store.save_vector(file_id, 0, _unit(1.0, 1.0))
            store.save_vector(file_id, 1, _unit(1.0, 0.0))
        index = VectorIndex()
        index.load(store)

        matches = index.search(_unit(1.0, 0.0))

        assert len(matches) == 1
        assert matches[0][0] == file_id
        assert matches[0][1] == pytest.approx(1.0)

    def test_top_k(self, store: SQLiteFileStore) -> None:
        with store.transaction():
            for i in range(25):
                store.insert_file(f"/d/{i}.txt", f"{i}.txt", ".txt", 1, summary="x")
        for i in range(25):
            file_id = store.get_file(f"/d/{i}.txt").id
            with store.transaction():
                store.save_vector(file_id, 0, _unit(1.0, i / 100))
        index = VectorIndex()
        index.load(store)

        assert len(index.search(_unit(1.0, 0.0))) == 10
        assert len(index.search(_unit(1.0, 0.0), top_k=3)) == 3

    def test_skips_bad_vectors(self, store: SQLiteFileStore) -> None:
        good = _file(store, "/d/good.txt")
        odd = _file(store, "/d/odd.txt")
        wide = _file(store, "/d/wide.txt")
        with store.transaction():
            store.save_vector(good, 0, _unit(1.0, 0.0))
            store.save_vector(wide, 0, _unit(1.0, 0.0, 0.0))
            store.connection.execute(
                "INSERT INTO file_vectors(file_id, chunk_index, vector_blob) VALUES (?, 0, ?)",
                (odd, b"\x00\x01\x02"),
            )
        index = VectorIndex()

        assert index.load(store) == 1
        assert index.dimension == 2

    def test_query_dimension_mismatch(self, store: SQLiteFileStore) -> None:
        file_id = _file(store, "/d/a.txt")
        with store.transaction():
            store.save_vector(file_id, 0, _unit(1.0, 0.0))
        index = VectorIndex()
        index.load(store)

        with pytest.raises(ValueError):
            index.search(_unit(1.0, 0.0, 0.0))

    def test_reload_replaces_contents(self, store: SQLiteFileStore) -> None:
        file_id = _file(store, "/d/a.txt")
        with store.transaction():
            store.save_vector(file_id, 0, _unit(1.0, 0.0))
        index = VectorIndex()
        index.load(store)

        store.delete_paths(["/d/a.txt"])
        index.load(store)

        assert len(index) == 0
        assert index.search(_unit(1.0, 0.0)) == []

    def test_search_during_reload_sees_whole_snapshot(self, store: SQLiteFileStore) -> None:
        for i in range(50):
            file_id = _file(store, f"/d/{i}.txt")
            with store.transaction():
                store.save_vector(file_id, 0, _unit(1.0, 0.0))
        index = VectorIndex()
        index.load(store)
        sizes: list[int] = []
        stop = threading.Event()

        def searcher() -> None:
            while True:
                sizes.append(len(index.search(_unit(1.0, 0.0), top_k=100)))
                if stop.is_set():
                    break

        worker = threading.Thread(target=searcher)
        worker.start()
        try:
            for _ in range(5):
                index.load(store)
        finally:
            stop.set()
            worker.join()

        assert set(sizes) == {50}

    def test_clear(self, store: SQLiteFileStore) -> None:
        file_id = _file(store, "/d/a.txt")
        with store.transaction():
            store.save_vector(file_id, 0, _unit(1.0, 0.0))
        index = VectorIndex()
        index.load(store)

        index.clear()

        assert len(index) == 0
