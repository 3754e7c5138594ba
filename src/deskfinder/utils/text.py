"""Text helpers: cleaning of extracted content and word-window chunking."""

from __future__ import annotations

import re
from typing import Iterator

_TAG_RE = re.compile(r"<[^>]*>")

# Order matters: "&amp;" must be decoded last so "&amp;lt;" stays "&lt;".
_ENTITIES = (
    ("&nbsp;", " "),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)

# Anything outside printable ASCII, newline and tab.
_DISALLOWED_RE = re.compile(r"[^\x20-\x7e\n\t]+")


def clean_text(raw: str, *, markup: bool = False) -> str:
    """Reduce extracted content to single-spaced printable ASCII.

    With ``markup`` enabled every tag is replaced by a space, so
    ``"A</b><b>B"`` becomes ``"A B"``, and the common entities are decoded.
    """
    if not raw:
        return ""
    if markup:
        raw = _TAG_RE.sub(" ", raw)
        for entity, literal in _ENTITIES:
            raw = raw.replace(entity, literal)
    raw = _DISALLOWED_RE.sub(" ", raw)
    return " ".join(raw.split())


def chunk_words(
    text: str, *, window: int = 300, overlap: int = 50, max_chunks: int = 15
) -> list[str]:
    """Split text into overlapping word windows.

    Returns at most ``max_chunks`` windows of ``window`` words, each starting
    ``window - overlap`` words after the previous one.
    """
    words = text.split()
    if not words:
        return []

    step = max(window - overlap, 1)
    chunks: list[str] = []
    for start in range(0, len(words), step):
        chunks.append(" ".join(words[start : start + window]))
        if len(chunks) >= max_chunks or start + window >= len(words):
            break
    return chunks


def first_words(text: str, limit: int) -> str:
    """Return the first ``limit`` whitespace-separated words of ``text``."""
    return " ".join(text.split()[:limit])


def truncate_snippet(text: str, limit: int = 200) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def iter_terms(query: str) -> Iterator[str]:
    """Yield the alphanumeric terms of a query."""
    yield from re.sub(r"[^a-zA-Z0-9]+", " ", query).split()
