"""Embedding pass: turns file summaries into stored vectors."""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Callable, Literal

import numpy as np

from deskfinder.embedding.encoder import EmbeddingNotReadyError, EmbeddingProvider
from deskfinder.index.storage import SQLiteFileStore
from deskfinder.models import EmbeddingStats
from deskfinder.utils.text import chunk_words, first_words

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class EmbeddingScanner:
    """Embeds every summarised file that has no vectors yet.

    ``"simple"`` embeds the start of the summary as one chunk; ``"windowed"``
    embeds overlapping word windows, up to ``max_chunks`` per file.
    """

    def __init__(
        self,
        store: SQLiteFileStore,
        provider: EmbeddingProvider,
        *,
        strategy: Literal["simple", "windowed"] = "simple",
        max_chunks: int = 15,
        chunk_words: int = 300,
        chunk_overlap: int = 50,
        simple_max_tokens: int = 512,
        min_chunk_chars: int = 10,
    ) -> None:
        if strategy not in ("simple", "windowed"):
            raise ValueError(f"Unknown embedding strategy: {strategy!r}")
        self.store = store
        self.provider = provider
        self.strategy = strategy
        self.max_chunks = max(max_chunks, 1)
        self.chunk_words = chunk_words
        self.chunk_overlap = chunk_overlap
        self.simple_max_tokens = simple_max_tokens
        self.min_chunk_chars = min_chunk_chars

    def chunks_for(self, summary: str) -> list[str]:
        if self.strategy == "simple":
            head = first_words(summary, self.simple_max_tokens)
            return [head] if head else []
        return chunk_words(
            summary,
            window=self.chunk_words,
            overlap=self.chunk_overlap,
            max_chunks=self.max_chunks,
        )

    def run(self, progress: ProgressCallback | None = None) -> EmbeddingStats:
        stats = EmbeddingStats()
        if not self.provider.is_ready:
            LOGGER.warning("Embedding engine not ready, skipping semantic indexing")
            return stats

        started = time.perf_counter()
        pending = self.store.files_needing_embedding()
        total = len(pending)
        LOGGER.info("Found %d files needing vectors", total)

        for count, (file_id, summary) in enumerate(pending.items(), start=1):
            try:
                vectors = self._embed_file(file_id, summary, stats)
            except EmbeddingNotReadyError as exc:
                LOGGER.error("Embedding engine became unavailable: %s", exc)
                break
            if vectors:
                self._save(file_id, vectors, stats)
            if progress is not None:
                progress(count, total)

        LOGGER.info(
            "Embedding complete in %.1fs: %d files, %d vectors, %d chunks failed",
            time.perf_counter() - started,
            stats.files,
            stats.vectors,
            stats.failed_chunks,
        )
        return stats

    def _embed_file(
        self, file_id: int, summary: str, stats: EmbeddingStats
    ) -> list[tuple[int, np.ndarray]]:
        vectors: list[tuple[int, np.ndarray]] = []
        for index, segment in enumerate(self.chunks_for(summary)):
            if len(segment) < self.min_chunk_chars:
                stats.skipped_chunks += 1
                continue
            try:
                vector = self.provider.embed(segment)
            except EmbeddingNotReadyError:
                raise
            except Exception as exc:
                LOGGER.warning("Embedding failed for file %d chunk %d: %s", file_id, index, exc)
                stats.failed_chunks += 1
                continue
            vectors.append((index, np.asarray(vector, dtype=np.float32)))
        return vectors

    def _save(self, file_id: int, vectors: list[tuple[int, np.ndarray]], stats: EmbeddingStats) -> None:
        try:
            with self.store.transaction():
                self.store.delete_vectors(file_id)
                for index, vector in vectors:
                    self.store.save_vector(file_id, index, vector)
        except sqlite3.Error as exc:
            LOGGER.error("Failed to save vectors for file %d: %s", file_id, exc)
            stats.failed_chunks += len(vectors)
            return
        stats.files += 1
        stats.vectors += len(vectors)
