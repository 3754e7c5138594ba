"""Incremental directory scanning ("quick scan")."""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

from deskfinder.index.storage import SQLiteFileStore
from deskfinder.models import ScanStats
from deskfinder.utils.files import FileEntry, walk_files

LOGGER = logging.getLogger(__name__)

APP_EXTENSIONS = (".lnk", ".exe", ".url")

IconExtractor = Callable[[str], str]


@dataclass(slots=True)
class DirectoryFilter:
    """Decides which directories a scan never descends into."""

    root: str
    ignored: frozenset[str]
    root_ignored: frozenset[str]

    @classmethod
    def for_root(
        cls, root: str | Path, ignored: Iterable[str], root_ignored: Iterable[str]
    ) -> "DirectoryFilter":
        return cls(os.path.normpath(os.fspath(root)), frozenset(ignored), frozenset(root_ignored))

    def __call__(self, path: str, name: str) -> bool:
        if name.startswith(".") or name in self.ignored:
            return True
        if name in self.root_ignored and os.path.normpath(os.path.dirname(path)) == self.root:
            return True
        # Per-app package caches nested under AppData\Local
        if name == "Packages":
            parts = Path(path).parts
            if len(parts) >= 3 and parts[-3].lower() == "appdata" and parts[-2].lower() == "local":
                return True
        return False


class DirectoryScanner:
    """Reconciles a directory tree with the file records in the store.

    Unchanged files cost no write. Changed files get their new modification
    time and an unset summary so the content extractor picks them up again.
    Paths that were recorded but not seen during the walk are reported as
    stale.
    """

    def __init__(
        self,
        store: SQLiteFileStore,
        *,
        ignored_dirs: Sequence[str] = (),
        root_ignored_dirs: Sequence[str] = (),
        batch_size: int = 2000,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.ignored_dirs = tuple(ignored_dirs)
        self.root_ignored_dirs = tuple(root_ignored_dirs)
        self.batch_size = batch_size

    def scan(self, root: str | Path, *, prune: bool = False) -> ScanStats:
        """Walk ``root`` and record new and modified files.

        With ``prune`` the stale records are deleted once the walk is done;
        otherwise they are only reported in ``ScanStats.stale``.
        """
        root = os.path.abspath(os.fspath(root))
        LOGGER.info("Quick scan of %s", root)
        started = time.perf_counter()
        stats = ScanStats()

        existing = self.store.load_file_map(root)
        LOGGER.info("Loaded %d known files under %s", len(existing), root)

        dir_filter = DirectoryFilter.for_root(root, self.ignored_dirs, self.root_ignored_dirs)
        batch: list[tuple[FileEntry, bool]] = []
        for entry in walk_files(root, dir_filter):
            stats.scanned += 1
            stored = existing.pop(entry.path, None)
            if stored is not None and stored == entry.modified_time:
                stats.skipped += 1
                continue
            batch.append((entry, stored is not None))
            if len(batch) >= self.batch_size:
                self._flush(batch, stats)
                batch = []
        if batch:
            self._flush(batch, stats)

        stats.stale = set(existing)
        if prune and stats.stale:
            stats.removed = self.store.delete_paths(sorted(stats.stale))

        LOGGER.info(
            "Quick scan of %s complete in %.1fs: scanned %d, new %d, updated %d, "
            "unchanged %d, failed %d, stale %d",
            root,
            time.perf_counter() - started,
            stats.scanned,
            stats.added,
            stats.updated,
            stats.skipped,
            stats.failed,
            len(stats.stale),
        )
        return stats

    def _flush(self, batch: list[tuple[FileEntry, bool]], stats: ScanStats) -> None:
        """Write one batch in a single transaction.

        A failing statement only skips its own entry; a failing transaction
        loses the whole batch, which the next scan picks up again.
        """
        added = updated = failed = 0
        try:
            with self.store.transaction():
                for entry, known in batch:
                    try:
                        if known:
                            self.store.update_modified(entry.path, entry.modified_time)
                            updated += 1
                        else:
                            self.store.insert_file(
                                entry.path, entry.name, entry.extension, entry.modified_time
                            )
                            added += 1
                    except sqlite3.Error as exc:
                        LOGGER.error("Failed to record %s: %s", entry.path, exc)
                        failed += 1
        except sqlite3.Error as exc:
            LOGGER.error("Scan batch of %d entries rolled back: %s", len(batch), exc)
            stats.failed += len(batch)
            return

        stats.added += added
        stats.updated += updated
        stats.failed += failed
        LOGGER.debug(
            "Committed batch: scanned %d, new %d, updated %d",
            stats.scanned,
            stats.added,
            stats.updated,
        )

    def scan_applications(
        self, roots: Iterable[str | Path], icon_extractor: IconExtractor | None = None
    ) -> ScanStats:
        """Register launchable entries (shortcuts, executables) under ``roots``.

        Each gets a synthesized summary so it is findable by name, and its own
        icon when an extractor is available. Entries whose modification time is
        unchanged are skipped without extracting their icon. Icons are
        extracted before the write transaction opens.
        """
        stats = ScanStats()
        pending: list[tuple[FileEntry, str, str, str | None]] = []
        for root in roots:
            root = os.path.abspath(os.fspath(root))
            if not os.path.isdir(root):
                continue
            known = self.store.load_file_map(root)
            for entry in walk_files(root):
                extension = entry.extension.lower()
                if extension not in APP_EXTENSIONS:
                    continue
                stats.scanned += 1
                if known.get(entry.path) == entry.modified_time:
                    stats.skipped += 1
                    continue
                summary = f"{entry.name[: -len(extension)]} Application"
                icon = _safe_icon(icon_extractor, entry.path)
                pending.append((entry, extension, summary, icon))

        if pending:
            with self.store.transaction():
                for entry, extension, summary, icon in pending:
                    try:
                        status = self.store.upsert_application(
                            entry.path, entry.name, extension, entry.modified_time, summary, icon
                        )
                    except sqlite3.Error as exc:
                        LOGGER.error("Failed to record application %s: %s", entry.path, exc)
                        stats.failed += 1
                        continue
                    if status == "inserted":
                        stats.added += 1
                    elif status == "updated":
                        stats.updated += 1
                    else:
                        stats.skipped += 1
        LOGGER.info(
            "Checked applications: %d new, %d refreshed, %d unchanged",
            stats.added,
            stats.updated,
            stats.skipped,
        )
        return stats


def _safe_icon(icon_extractor: IconExtractor | None, path: str) -> str | None:
    if icon_extractor is None:
        return None
    try:
        return icon_extractor(path) or None
    except Exception as exc:
        LOGGER.warning("Icon extraction failed for %s: %s", path, exc)
        return None
