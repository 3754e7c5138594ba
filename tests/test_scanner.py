"""Tests for the incremental directory scanner."""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import write_file

from deskfinder.config import DEFAULT_IGNORED_DIRS, DEFAULT_ROOT_IGNORED_DIRS
from deskfinder.index.scanner import DirectoryFilter, DirectoryScanner
from deskfinder.index.storage import SQLiteFileStore


@pytest.fixture
def scanner(store: SQLiteFileStore) -> DirectoryScanner:
    return DirectoryScanner(
        store,
        ignored_dirs=DEFAULT_IGNORED_DIRS,
        root_ignored_dirs=DEFAULT_ROOT_IGNORED_DIRS,
    )


class TestQuickScan:
    """Test DirectoryScanner.scan."""

    def test_records_new_files(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        write_file(root / "a.txt", "alpha", mtime=1_000)
        write_file(root / "sub" / "b.md", "beta", mtime=2_000)

        stats = scanner.scan(root)

        assert stats.scanned == 2
        assert stats.added == 2
        assert stats.stale == set()
        record = store.get_file(str(root / "sub" / "b.md"))
        assert record.modified_time == 2_000
        assert record.extension == ".md"
        assert record.summary is None

    def test_rescan_is_idempotent(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        write_file(root / "a.txt", mtime=1_000)
        write_file(root / "b.txt", mtime=1_000)
        scanner.scan(root)

        stats = scanner.scan(root)

        assert stats.scanned == 2
        assert stats.skipped == 2
        assert stats.writes == 0
        assert store.count_files() == 2

    def test_modified_file_is_requeued(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        path = write_file(root / "a.txt", "v1", mtime=1_000)
        scanner.scan(root)
        with store.transaction():
            store.set_summary(str(path), "v1")

        write_file(path, "v2", mtime=3_000)
        stats = scanner.scan(root)

        assert stats.updated == 1
        record = store.get_file(str(path))
        assert record.modified_time == 3_000
        assert record.summary is None

    def test_stale_paths_reported(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        gone = write_file(root / "gone.txt")
        write_file(root / "kept.txt")
        scanner.scan(root)
        gone.unlink()

        stats = scanner.scan(root)

        assert stats.stale == {str(gone)}
        assert stats.removed == 0
        assert store.get_file(str(gone)) is not None

    def test_prune_deletes_stale(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        gone = write_file(root / "gone.txt")
        scanner.scan(root)
        gone.unlink()

        stats = scanner.scan(root, prune=True)

        assert stats.removed == 1
        assert store.get_file(str(gone)) is None

    def test_other_roots_are_not_stale(
        self, scanner: DirectoryScanner, tmp_path: Path
    ) -> None:
        write_file(tmp_path / "one" / "a.txt")
        write_file(tmp_path / "one-more" / "b.txt")
        scanner.scan(tmp_path / "one-more")

        stats = scanner.scan(tmp_path / "one")

        assert stats.stale == set()

    def test_ignored_directories(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        write_file(root / "keep.txt")
        write_file(root / ".git" / "config")
        write_file(root / "node_modules" / "pkg" / "index.js")
        write_file(root / "$RECYCLE.BIN" / "trash.txt")
        write_file(root / "project" / ".cache" / "blob")

        stats = scanner.scan(root)

        assert stats.scanned == 1
        assert store.get_file(str(root / "keep.txt")) is not None

    def test_hidden_files_are_still_recorded(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        write_file(root / ".env")

        assert scanner.scan(root).added == 1

    def test_batches(self, store: SQLiteFileStore, tmp_path: Path) -> None:
        root = tmp_path / "root"
        for i in range(7):
            write_file(root / f"f{i}.txt")
        scanner = DirectoryScanner(store, batch_size=3)

        with patch.object(store, "transaction", wraps=store.transaction) as transaction:
            stats = scanner.scan(root)

        assert stats.added == 7
        assert transaction.call_count == 3

    def test_failed_statement_skips_only_that_file(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "root"
        write_file(root / "bad.txt")
        write_file(root / "good.txt")
        original = store.insert_file

        def flaky(path: str, *args, **kwargs) -> None:
            if path.endswith("bad.txt"):
                raise sqlite3.OperationalError("disk I/O error")
            original(path, *args, **kwargs)

        with patch.object(store, "insert_file", side_effect=flaky):
            stats = scanner.scan(root)

        assert stats.added == 1
        assert stats.failed == 1
        assert store.get_file(str(root / "good.txt")) is not None
        assert store.get_file(str(root / "bad.txt")) is None

    def test_invalid_batch_size(self, store: SQLiteFileStore) -> None:
        with pytest.raises(ValueError):
            DirectoryScanner(store, batch_size=0)


class TestDirectoryFilter:
    """Test the directory deny-list."""

    @pytest.fixture
    def dir_filter(self) -> DirectoryFilter:
        return DirectoryFilter.for_root(
            os.path.join(os.sep, "scan"), DEFAULT_IGNORED_DIRS, DEFAULT_ROOT_IGNORED_DIRS
        )

    def test_hidden_and_ignored(self, dir_filter: DirectoryFilter) -> None:
        assert dir_filter(os.path.join(os.sep, "scan", ".git"), ".git")
        assert dir_filter(os.path.join(os.sep, "scan", "a", "node_modules"), "node_modules")
        assert dir_filter(
            os.path.join(os.sep, "scan", "System Volume Information"), "System Volume Information"
        )
        assert not dir_filter(os.path.join(os.sep, "scan", "docs"), "docs")

    def test_root_only_names(self, dir_filter: DirectoryFilter) -> None:
        assert dir_filter(os.path.join(os.sep, "scan", "Windows"), "Windows")
        assert dir_filter(os.path.join(os.sep, "scan", "Program Files"), "Program Files")
        assert not dir_filter(os.path.join(os.sep, "scan", "src", "Windows"), "Windows")

    def test_appdata_packages(self, dir_filter: DirectoryFilter) -> None:
        packages = os.path.join(os.sep, "scan", "me", "AppData", "Local", "Packages")
        assert dir_filter(packages, "Packages")
        assert not dir_filter(os.path.join(os.sep, "scan", "Packages"), "Packages")


class TestApplicationScan:
    def test_registers_launchables(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        apps = tmp_path / "apps"
        write_file(apps / "Editor.lnk", mtime=10)
        write_file(apps / "tools" / "Calc.EXE", mtime=10)
        write_file(apps / "readme.txt")

        stats = scanner.scan_applications([apps, tmp_path / "missing"], lambda p: "ICON")

        assert stats.added == 2
        record = store.get_file(str(apps / "Editor.lnk"))
        assert record.summary == "Editor Application"
        assert record.icon_data == "ICON"
        calc = store.get_file(str(apps / "tools" / "Calc.EXE"))
        assert calc.extension == ".exe"
        assert calc.summary == "Calc Application"
        assert store.get_file(str(apps / "readme.txt")) is None
        assert [r.path for r in store.keyword_search("editor")] == [str(apps / "Editor.lnk")]

    def test_rescan_skips_unchanged(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        apps = tmp_path / "apps"
        write_file(apps / "Editor.lnk", mtime=10)
        scanner.scan_applications([apps], lambda p: "ICON")
        icons = MagicMock(return_value="NEW")

        with patch.object(store, "upsert_application", wraps=store.upsert_application) as upsert:
            stats = scanner.scan_applications([apps], icons)

        assert (stats.added, stats.updated, stats.skipped) == (0, 0, 1)
        icons.assert_not_called()
        upsert.assert_not_called()
        assert store.get_file(str(apps / "Editor.lnk")).icon_data == "ICON"

    def test_rescan_updates_touched(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        apps = tmp_path / "apps"
        write_file(apps / "Editor.lnk", mtime=10)
        scanner.scan_applications([apps], lambda p: "ICON")
        write_file(apps / "Editor.lnk", mtime=20)

        stats = scanner.scan_applications([apps], lambda p: "NEW")

        assert (stats.added, stats.updated, stats.skipped) == (0, 1, 0)
        record = store.get_file(str(apps / "Editor.lnk"))
        assert record.modified_time == 20
        assert record.icon_data == "NEW"

    def test_icons_extracted_before_transaction(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        apps = tmp_path / "apps"
        write_file(apps / "Editor.lnk")
        write_file(apps / "Calc.exe")
        opened_when_extracting = []

        with patch.object(store, "transaction", wraps=store.transaction) as transaction:

            def icons(path: str) -> str:
                opened_when_extracting.append(transaction.call_count)
                return "ICON"

            stats = scanner.scan_applications([apps], icons)

        assert stats.added == 2
        assert opened_when_extracting == [0, 0]
        assert transaction.call_count == 1

    def test_icon_failure_is_tolerated(
        self, scanner: DirectoryScanner, store: SQLiteFileStore, tmp_path: Path
    ) -> None:
        apps = tmp_path / "apps"
        write_file(apps / "Broken.lnk")

        def broken(path: str) -> str:
            raise OSError("no icon")

        stats = scanner.scan_applications([apps], broken)

        assert stats.added == 1
        assert store.get_file(str(apps / "Broken.lnk")).icon_data is None
