"""Hybrid search: keyword and semantic results merged into one ranking."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import PurePath
from typing import Dict, List, Mapping, Optional, Sequence

from deskfinder.index.semantic import SemanticSearcher
from deskfinder.index.storage import SQLiteFileStore
from deskfinder.index.usage import UsageCounter
from deskfinder.models import SearchResult
from deskfinder.query.dates import parse_date_query

LOGGER = logging.getLogger(__name__)

WEIGHT_KEYWORD = 1.2
WEIGHT_VECTOR = 1.0
DOUBLE_MATCH_BONUS = 0.5

USAGE_BOOST = 0.5
LAUNCHABLE_BOOST = 10.0
LAUNCHABLE_EXTENSIONS = (".lnk", ".exe")
PREFIX_BOOST = 2.0

MAX_RESULTS = 15


@dataclass(slots=True)
class RankedResult:
    result: SearchResult
    score: float


def merge_results(
    keyword_results: Sequence[SearchResult], vector_results: Sequence[SearchResult]
) -> Dict[str, RankedResult]:
    """Combine both result lists by path.

    A path found by both searches gets both weighted scores plus a bonus and
    keeps the longer snippet.
    """
    merged: Dict[str, RankedResult] = {}
    for res in keyword_results:
        merged[res.path] = RankedResult(res, res.score * WEIGHT_KEYWORD)

    for res in vector_results:
        existing = merged.get(res.path)
        if existing is None:
            merged[res.path] = RankedResult(res, res.score * WEIGHT_VECTOR)
            continue
        existing.score += res.score * WEIGHT_VECTOR + DOUBLE_MATCH_BONUS
        if len(res.snippet) > len(existing.result.snippet):
            existing.result = replace(existing.result, snippet=res.snippet)
    return merged


def apply_boosts(
    merged: Mapping[str, RankedResult], query: str, usage: Mapping[str, int]
) -> None:
    """Apply, in order, the usage, launchable-type and name-prefix boosts."""
    prefix = query.strip().lower()
    for path, item in merged.items():
        count = usage.get(path, 0)
        if count:
            item.score *= 1 + USAGE_BOOST * count

        lower_path = path.lower()
        if lower_path.endswith(LAUNCHABLE_EXTENSIONS):
            item.score *= LAUNCHABLE_BOOST

        if prefix and PurePath(lower_path).name.startswith(prefix):
            item.score *= PREFIX_BOOST


def rank(merged: Mapping[str, RankedResult], limit: int = MAX_RESULTS) -> List[SearchResult]:
    """Sort by combined score, best first; stable for equal scores."""
    ordered = sorted(merged.values(), key=lambda item: item.score, reverse=True)
    return [replace(item.result, score=item.score) for item in ordered[:limit]]


class HybridSearcher:
    """Runs keyword and semantic search side by side and ranks the union.

    Either branch may fail or be unavailable; the other branch's results are
    still returned. ``search`` never raises.
    """

    def __init__(
        self,
        store: SQLiteFileStore,
        semantic: Optional[SemanticSearcher] = None,
        usage: Optional[UsageCounter] = None,
        *,
        max_results: int = MAX_RESULTS,
    ) -> None:
        self.store = store
        self.semantic = semantic
        self.usage = usage
        self.max_results = max_results

    def search(self, raw_query: str, *, now: datetime | None = None) -> List[SearchResult]:
        if not raw_query or not raw_query.strip():
            return []
        try:
            return self._search(raw_query, now)
        except Exception:
            LOGGER.exception("Search failed for %r", raw_query)
            return []

    def _search(self, raw_query: str, now: datetime | None) -> List[SearchResult]:
        query, min_time, max_time = parse_date_query(raw_query, now)
        if min_time > 0:
            LOGGER.info(
                "Filtering files modified between %s and %s",
                datetime.fromtimestamp(min_time).isoformat(sep=" "),
                datetime.fromtimestamp(max_time).isoformat(sep=" "),
            )

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="deskfinder-search") as pool:
            keyword_future = pool.submit(
                self.store.keyword_search, query, min_time=min_time, max_time=max_time
            )
            vector_future: Optional[Future] = None
            if self.semantic is not None:
                vector_future = pool.submit(
                    self.semantic.search, query, min_time=min_time, max_time=max_time
                )
            keyword_results = _collect(keyword_future, "Keyword")
            vector_results = _collect(vector_future, "Vector")

        merged = merge_results(keyword_results, vector_results)
        usage = self._usage_snapshot()
        apply_boosts(merged, query, usage)
        return rank(merged, self.max_results)

    def _usage_snapshot(self) -> Mapping[str, int]:
        if self.usage is None:
            return {}
        try:
            return self.usage.snapshot()
        except Exception as exc:
            LOGGER.warning("Usage counts unavailable: %s", exc)
            return {}


def _collect(future: Optional[Future], label: str) -> List[SearchResult]:
    if future is None:
        return []
    try:
        return list(future.result())
    except Exception as exc:
        LOGGER.warning("%s search failed: %s", label, exc)
        return []
