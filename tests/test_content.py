"""Tests for the content extraction pass."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import write_file

from deskfinder.index.content import ContentExtractor
from deskfinder.index.scanner import DirectoryScanner
from deskfinder.index.storage import SQLiteFileStore


def _scan(store: SQLiteFileStore, root: Path) -> None:
    DirectoryScanner(store).scan(root)


class TestContentExtractor:
    """Test ContentExtractor.run."""

    def test_fills_summaries(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        write_file(root / "a.txt", "quarterly  report")
        write_file(root / "b.exe", "MZ")
        _scan(store, root)

        stats = ContentExtractor(store, extensions=[".txt"]).run()

        assert stats.processed == 1
        assert stats.extracted == 1
        assert store.get_file(str(root / "a.txt")).summary == "quarterly report"
        assert store.get_file(str(root / "b.exe")).summary is None

    def test_empty_file(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        write_file(root / "empty.txt", "")
        _scan(store, root)

        stats = ContentExtractor(store, extensions=[".txt"]).run()

        assert stats.empty == 1
        assert store.get_file(str(root / "empty.txt")).summary == ""
        assert store.pending_content([".txt"]) == []

    def test_reader_error_stores_empty_summary(
        self, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        write_file(root / "broken.docx", "not a zip")
        write_file(root / "fine.txt", "fine")
        _scan(store, root)

        stats = ContentExtractor(store, extensions=[".docx", ".txt"]).run()

        assert stats.failed == 1
        assert stats.extracted == 1
        assert store.get_file(str(root / "broken.docx")).summary == ""

    def test_timeout_stores_empty_summary(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        write_file(root / "slow.png", "")
        _scan(store, root)
        release = threading.Event()

        def hanging_reader(path: str) -> str:
            release.wait(5)
            return "too late"

        extractor = ContentExtractor(
            store,
            extensions=[],
            image_extensions=[".png"],
            image_reader=hanging_reader,
            timeout=0.1,
        )
        try:
            stats = extractor.run()
        finally:
            release.set()

        assert stats.timed_out == 1
        assert store.get_file(str(root / "slow.png")).summary == ""

    def test_images_need_a_reader(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        write_file(root / "photo.jpg", "")
        _scan(store, root)

        extractor = ContentExtractor(store, extensions=[".txt"], image_extensions=[".jpg"])

        assert ".jpg" not in extractor.extensions
        assert extractor.run().processed == 0

    def test_image_text(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        write_file(root / "receipt.JPG", "")
        _scan(store, root)

        ContentExtractor(
            store,
            extensions=[],
            image_extensions=[".jpg"],
            image_reader=lambda path: "Total 42",
        ).run()

        assert store.keyword_search("total")[0].path == str(root / "receipt.JPG")

    def test_batches_and_progress(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        for i in range(5):
            write_file(root / f"f{i}.txt", f"file {i}")
        _scan(store, root)
        progress = MagicMock()
        extractor = ContentExtractor(store, extensions=[".txt"], batch_size=2)

        with patch.object(store, "transaction", wraps=store.transaction) as transaction:
            stats = extractor.run(progress)

        assert stats.processed == 5
        assert transaction.call_count == 3
        assert [c.args[:2] for c in progress.call_args_list] == [(2, 5), (4, 5), (5, 5)]

    def test_changed_file_is_extracted_again(
        self, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        path = write_file(root / "a.txt", "first draft", mtime=1_000)
        _scan(store, root)
        extractor = ContentExtractor(store, extensions=[".txt"])
        extractor.run()

        write_file(path, "final version", mtime=2_000)
        _scan(store, root)
        extractor.run()

        assert store.get_file(str(path)).summary == "final version"

    def test_invalid_batch_size(self, store: SQLiteFileStore) -> None:
        with pytest.raises(ValueError):
            ContentExtractor(store, extensions=[".txt"], batch_size=0)
