"""Content extraction pass ("deep scan")."""

from __future__ import annotations

import logging
import sqlite3
import time
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Optional

from deskfinder.ingestion.extractors import (
    MAX_PDF_PAGES,
    MAX_READ_BYTES,
    TextReader,
    extract_content,
)
from deskfinder.index.storage import SQLiteFileStore
from deskfinder.models import ExtractionStats
from deskfinder.utils.tasks import TaskResult, run_with_deadline

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class ContentExtractor:
    """Fills in summaries for readable files that do not have one yet.

    Each file is read under a deadline. A timeout or a reader failure stores
    an empty summary, so the file is not retried until it changes on disk.
    """

    def __init__(
        self,
        store: SQLiteFileStore,
        *,
        extensions: Iterable[str],
        image_extensions: Iterable[str] = (),
        image_reader: Optional[TextReader] = None,
        timeout: float = 2.0,
        batch_size: int = 100,
        max_bytes: int = MAX_READ_BYTES,
        max_pdf_pages: int = MAX_PDF_PAGES,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.image_reader = image_reader
        self.image_extensions = frozenset(ext.lower() for ext in image_extensions)
        self.extensions = frozenset(ext.lower() for ext in extensions)
        if image_reader is not None:
            self.extensions |= self.image_extensions
        self.timeout = timeout
        self.batch_size = batch_size
        self.max_bytes = max_bytes
        self.max_pdf_pages = max_pdf_pages

    def extract(self, path: str) -> TaskResult[str]:
        reader = partial(
            extract_content,
            max_bytes=self.max_bytes,
            max_pdf_pages=self.max_pdf_pages,
            image_reader=self.image_reader,
            image_extensions=self.image_extensions,
        )
        return run_with_deadline(reader, path, deadline=self.timeout)

    def run(self, progress: ProgressCallback | None = None) -> ExtractionStats:
        started = time.perf_counter()
        stats = ExtractionStats()
        pending = self.store.pending_content(self.extensions)
        total = len(pending)
        LOGGER.info("Found %d files needing content extraction", total)
        if not total:
            return stats

        for start in range(0, total, self.batch_size):
            batch = pending[start : start + self.batch_size]
            summaries = [(path, self._summarize(path, stats)) for path in batch]
            self._write(summaries, stats)
            if progress is not None:
                progress(stats.processed, total, Path(batch[-1]).name)

        LOGGER.info(
            "Content extraction complete in %.1fs: %d processed, %d with text, "
            "%d empty, %d timed out, %d failed",
            time.perf_counter() - started,
            stats.processed,
            stats.extracted,
            stats.empty,
            stats.timed_out,
            stats.failed,
        )
        return stats

    def _summarize(self, path: str, stats: ExtractionStats) -> str:
        stats.processed += 1
        LOGGER.debug("Reading %s", path)
        result = self.extract(path)
        if result.status == "timeout":
            LOGGER.warning("Extraction timed out after %.1fs: %s", self.timeout, path)
            stats.timed_out += 1
            return ""
        if result.status == "error":
            LOGGER.warning("Extraction failed for %s: %s", path, result.error)
            stats.failed += 1
            return ""
        summary = result.value or ""
        if summary:
            stats.extracted += 1
        else:
            stats.empty += 1
        return summary

    def _write(self, summaries: list[tuple[str, str]], stats: ExtractionStats) -> None:
        try:
            with self.store.transaction():
                for path, summary in summaries:
                    try:
                        self.store.set_summary(path, summary)
                    except sqlite3.Error as exc:
                        LOGGER.error("Error saving summary for %s: %s", path, exc)
                        stats.failed += 1
        except sqlite3.Error as exc:
            LOGGER.error("Summary batch of %d rolled back: %s", len(summaries), exc)
            stats.failed += len(summaries)
