"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from deskfinder.embedding.encoder import DEFAULT_MODEL

DEFAULT_IGNORED_DIRS = (
    "node_modules",
    ".git",
    "$RECYCLE.BIN",
    "System Volume Information",
)

# Only pruned when they sit directly under the scan root (C:\Windows, ...)
DEFAULT_ROOT_IGNORED_DIRS = (
    "Windows",
    "Program Files",
    "Program Files (x86)",
)

DEFAULT_CONTENT_EXTENSIONS = (
    ".txt",
    ".md",
    ".markdown",
    ".rtf",
    ".pdf",
    ".docx",
    ".html",
    ".htm",
    ".xml",
    ".svg",
    ".csv",
    ".json",
    ".log",
)

DEFAULT_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tiff")


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "DeskFinder" / "deskfinder.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/deskfinder.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL

    embedding_strategy: Literal["simple", "windowed"] = "simple"
    max_chunks_per_file: int = 15
    chunk_words: int = 300
    chunk_overlap: int = 50
    simple_max_tokens: int = 512
    min_chunk_chars: int = 10

    ignored_dirs: tuple[str, ...] = DEFAULT_IGNORED_DIRS
    root_ignored_dirs: tuple[str, ...] = DEFAULT_ROOT_IGNORED_DIRS
    content_extensions: tuple[str, ...] = DEFAULT_CONTENT_EXTENSIONS
    image_extensions: tuple[str, ...] = DEFAULT_IMAGE_EXTENSIONS
    app_dirs: list[Path] = field(default_factory=list)

    scan_batch_size: int = 2000
    content_batch_size: int = 100
    extraction_timeout: float = 2.0
    max_read_bytes: int = 50 * 1024
    max_pdf_pages: int = 5

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if self.embedding_strategy not in ("simple", "windowed"):
            raise ValueError(f"Unknown embedding strategy: {self.embedding_strategy!r}")
        if self.chunk_overlap >= self.chunk_words:
            raise ValueError("chunk_overlap must be smaller than chunk_words")

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    @property
    def effective_max_chunks(self) -> int:
        """Vectors allowed per file under the active strategy."""
        if self.embedding_strategy == "simple":
            return 1
        return max(self.max_chunks_per_file, 1)
