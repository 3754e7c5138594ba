"""DeskFinder engine: wires the store, indexing pipeline and search together."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from deskfinder.config import AppConfig
from deskfinder.embedding.encoder import EmbeddingProvider
from deskfinder.index.content import ContentExtractor
from deskfinder.index.embedder import EmbeddingScanner
from deskfinder.index.icons import IconScanner
from deskfinder.index.scanner import DirectoryScanner
from deskfinder.index.search import HybridSearcher
from deskfinder.index.semantic import SemanticSearcher
from deskfinder.index.storage import SQLiteFileStore
from deskfinder.index.usage import UsageCounter
from deskfinder.index.vectors import VectorIndex
from deskfinder.models import SearchResult
from deskfinder.pipeline import IndexingPipeline, PipelineReport, ProgressSink, Stage

LOGGER = logging.getLogger(__name__)

SETTINGS_PATH = "deskfinder://settings"
SETTINGS_KEYWORDS = ("settings", "config")

IconExtractor = Callable[[str], str]
TextExtractor = Callable[[str], str]


def settings_result() -> SearchResult:
    return SearchResult(
        path=SETTINGS_PATH,
        snippet="Configure AI, Indexing, and Hotkeys",
        score=1000.0,
        extension=".settings",
    )


def inject_control_results(query: str, results: List[SearchResult]) -> List[SearchResult]:
    """Prepend the settings entry when the query is part of a control word."""
    lowered = query.strip().lower()
    if lowered and any(lowered in keyword for keyword in SETTINGS_KEYWORDS):
        return [settings_result(), *results]
    return results


def fill_icons(results: List[SearchResult], icons: Dict[str, str]) -> List[SearchResult]:
    """Give results without an icon the cached icon for their extension."""
    filled = []
    for res in results:
        if not res.icon_data:
            icon = icons.get(res.extension.lower())
            if icon:
                res = replace(res, icon_data=icon)
        filled.append(res)
    return filled


def open_with_system(path: str) -> None:
    if os.name == "posix":  # macOS/Linux
        opener = "open" if sys.platform == "darwin" else "xdg-open"
        subprocess.Popen([opener, path])
    else:
        os.startfile(path)  # type: ignore[attr-defined]


class DeskFinder:
    """Owns every long-lived component and their lifecycle.

    ``start`` loads the vector index from the store, ``close`` releases the
    store. Indexing runs either inline (``index``) or on a single background
    worker (``index_in_background``).
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        embedder: Optional[EmbeddingProvider] = None,
        *,
        icon_extractor: Optional[IconExtractor] = None,
        text_extractor: Optional[TextExtractor] = None,
        progress: Optional[ProgressSink] = None,
        opener: Callable[[str], None] = open_with_system,
    ) -> None:
        self.config = config or AppConfig()
        db_path = self.config.resolve_db_path(Path.cwd())
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.store = SQLiteFileStore(db_path)
        self.embedder = embedder
        self.icon_extractor = icon_extractor
        self.text_extractor = text_extractor
        self.progress = progress
        self.opener = opener

        self.vector_index = VectorIndex()
        self.usage = UsageCounter(self.store)
        self.semantic = (
            SemanticSearcher(embedder, self.vector_index, self.store) if embedder is not None else None
        )
        self.searcher = HybridSearcher(self.store, self.semantic, self.usage)
        self._icons: Dict[str, str] = {}
        self._worker: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "DeskFinder":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def start(self) -> None:
        self.reload_icons()
        self.vector_index.load(self.store)

    def close(self) -> None:
        if self._worker is not None:
            self._worker.shutdown(wait=True)
            self._worker = None
        self.store.close()

    def reload_icons(self) -> None:
        self._icons = self.store.extension_icons()

    def _cache_icons(self, icons: IconScanner) -> int:
        cached = icons.run()
        self.reload_icons()
        return cached

    # -- indexing -----------------------------------------------------------

    def build_pipeline(self, roots: Iterable[str | Path], *, prune: bool = False) -> IndexingPipeline:
        config = self.config
        scanner = DirectoryScanner(
            self.store,
            ignored_dirs=config.ignored_dirs,
            root_ignored_dirs=config.root_ignored_dirs,
            batch_size=config.scan_batch_size,
        )
        stages: List[Stage] = []

        if config.app_dirs:
            stages.append(
                Stage(
                    "Application scan",
                    lambda: scanner.scan_applications(config.app_dirs, self.icon_extractor),
                )
            )
        for root in roots:
            stages.append(
                Stage(f"Quick scan {root}", lambda root=root: scanner.scan(root, prune=prune))
            )
        if self.icon_extractor is not None:
            icons = IconScanner(self.store, self.icon_extractor)
            stages.append(Stage("Icon scan", lambda: self._cache_icons(icons)))

        extractor = ContentExtractor(
            self.store,
            extensions=config.content_extensions,
            image_extensions=config.image_extensions,
            image_reader=self.text_extractor,
            timeout=config.extraction_timeout,
            batch_size=config.content_batch_size,
            max_bytes=config.max_read_bytes,
            max_pdf_pages=config.max_pdf_pages,
        )
        stages.append(Stage("Content extraction", extractor.run))

        if self.embedder is not None:
            embedding_scan = EmbeddingScanner(
                self.store,
                self.embedder,
                strategy=config.embedding_strategy,
                max_chunks=config.effective_max_chunks,
                chunk_words=config.chunk_words,
                chunk_overlap=config.chunk_overlap,
                simple_max_tokens=config.simple_max_tokens,
                min_chunk_chars=config.min_chunk_chars,
            )
            stages.append(Stage("Embedding", embedding_scan.run))
            stages.append(Stage("Vector index reload", lambda: self.vector_index.load(self.store)))

        return IndexingPipeline(stages, progress=self.progress)

    def index(self, roots: Iterable[str | Path], *, prune: bool = False) -> PipelineReport:
        return self.build_pipeline(roots, prune=prune).run()

    def index_in_background(
        self, roots: Iterable[str | Path], *, prune: bool = False
    ) -> Future:
        """Queue a pipeline run; runs execute one at a time in submission order."""
        if self._worker is None:
            self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="deskfinder-index")
        pipeline = self.build_pipeline(list(roots), prune=prune)
        return self._worker.submit(pipeline.run)

    # -- search -------------------------------------------------------------

    def search(self, query: str) -> List[SearchResult]:
        if not query:
            return []
        results = self.searcher.search(query)
        results = inject_control_results(query, results)
        return fill_icons(results, self._icons)

    def open_file(self, path: str) -> bool:
        """Open a result and count the use; control entries are not counted."""
        if path == SETTINGS_PATH:
            return False
        try:
            self.usage.increment(path)
        except Exception as exc:
            LOGGER.warning("Could not record usage for %s: %s", path, exc)
        try:
            self.opener(path)
        except Exception as exc:
            LOGGER.error("Unable to open %s: %s", path, exc)
            return False
        return True
