"""Semantic search interface."""

from __future__ import annotations

import logging
from typing import List

from deskfinder.embedding.encoder import EmbeddingProvider
from deskfinder.index.storage import SQLiteFileStore
from deskfinder.index.vectors import SIMILARITY_THRESHOLD, TOP_K, VectorIndex
from deskfinder.models import SearchResult
from deskfinder.utils.text import truncate_snippet

LOGGER = logging.getLogger(__name__)

SNIPPET_CHARS = 200


class SemanticSearcher:
    """Embeds a query and looks it up in the in-memory vector index."""

    def __init__(
        self, embedder: EmbeddingProvider, index: VectorIndex, store: SQLiteFileStore
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.store = store

    @property
    def available(self) -> bool:
        return self.embedder.is_ready and len(self.index) > 0

    def search(
        self,
        query: str,
        *,
        min_time: int = 0,
        max_time: int = 0,
        threshold: float = SIMILARITY_THRESHOLD,
        top_k: int = TOP_K,
    ) -> List[SearchResult]:
        if not self.available:
            LOGGER.debug("Semantic search unavailable (engine not ready or index empty)")
            return []
        if not query.strip():
            return []

        embedding = self.embedder.embed(query)
        matches = self.index.search(embedding, threshold=threshold, top_k=top_k)
        records = self.store.get_files([file_id for file_id, _ in matches])

        results: List[SearchResult] = []
        for file_id, score in matches:
            record = records.get(file_id)
            if record is None:
                continue
            if min_time > 0 and record.modified_time < min_time:
                continue
            if max_time > 0 and record.modified_time > max_time:
                continue
            results.append(
                SearchResult(
                    path=record.path,
                    snippet=truncate_snippet(record.summary or "", SNIPPET_CHARS),
                    score=score,
                    extension=record.extension,
                    icon_data=record.icon_data or "",
                )
            )
        return results
