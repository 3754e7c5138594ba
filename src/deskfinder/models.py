"""Core DeskFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(slots=True)
class FileRecord:
    """One row of file metadata as stored in the ``files`` table."""

    id: int
    path: str
    filename: str
    extension: str
    modified_time: int
    summary: Optional[str] = None
    icon_data: Optional[str] = None


@dataclass(slots=True)
class SearchResult:
    path: str
    snippet: str
    score: float
    extension: str = ""
    icon_data: str = ""

    @property
    def name(self) -> str:
        return Path(self.path).name


@dataclass(slots=True)
class ScanStats:
    """Counters collected by the directory scanner."""

    scanned: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    stale: set[str] = field(default_factory=set)
    removed: int = 0

    @property
    def writes(self) -> int:
        return self.added + self.updated


@dataclass(slots=True)
class ExtractionStats:
    processed: int = 0
    extracted: int = 0
    empty: int = 0
    timed_out: int = 0
    failed: int = 0


@dataclass(slots=True)
class EmbeddingStats:
    files: int = 0
    vectors: int = 0
    skipped_chunks: int = 0
    failed_chunks: int = 0
