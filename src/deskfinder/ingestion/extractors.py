"""Format-specific content readers.

Every reader returns cleaned plain text (see ``clean_text``) capped at
``max_bytes``. Readers raise on unreadable input; callers decide how to
degrade.

PDFs are read with PyMuPDF (fitz), Word documents with python-docx.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import docx  # python-docx
import fitz  # PyMuPDF

from deskfinder.utils.text import clean_text

LOGGER = logging.getLogger(__name__)

MAX_READ_BYTES = 50 * 1024
MAX_PDF_PAGES = 5

MARKUP_EXTENSIONS = frozenset({".html", ".htm", ".xml", ".svg"})

TextReader = Callable[[str], str]


def _cap(text: str, max_bytes: int) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def read_text_file(path: Path, *, max_bytes: int = MAX_READ_BYTES) -> str:
    """Read the first ``max_bytes`` of a text file; tags are stripped for markup."""
    with Path(path).open("rb") as handle:
        raw = handle.read(max_bytes)
    markup = Path(path).suffix.lower() in MARKUP_EXTENSIONS
    return clean_text(raw.decode("utf-8", errors="replace"), markup=markup)


def read_pdf(
    path: Path, *, max_pages: int = MAX_PDF_PAGES, max_bytes: int = MAX_READ_BYTES
) -> str:
    """Extract text from the first ``max_pages`` pages of a PDF."""
    parts: list[str] = []
    size = 0
    doc = fitz.open(path)
    try:
        for index in range(min(max_pages, len(doc))):
            try:
                text = doc[index].get_text() or ""
            except Exception as exc:
                LOGGER.warning("Failed to read page %s in %s: %s", index, path, exc)
                continue
            parts.append(text)
            size += len(text)
            if size > max_bytes:
                break
    finally:
        doc.close()
    return _cap(clean_text(" ".join(parts)), max_bytes)


def read_docx(path: Path, *, max_bytes: int = MAX_READ_BYTES) -> str:
    """Extract paragraph and table text from a Word document."""
    document = docx.Document(str(path))
    parts: list[str] = []
    size = 0
    for paragraph in document.paragraphs:
        if paragraph.text:
            parts.append(paragraph.text)
            size += len(paragraph.text)
            if size > max_bytes:
                break
    if size <= max_bytes:
        for table in document.tables:
            for row in table.rows:
                for cell in row.cells:
                    if cell.text:
                        parts.append(cell.text)
    return _cap(clean_text("\n".join(parts)), max_bytes)


def extract_content(
    path: str | Path,
    *,
    max_bytes: int = MAX_READ_BYTES,
    max_pdf_pages: int = MAX_PDF_PAGES,
    image_reader: Optional[TextReader] = None,
    image_extensions: frozenset[str] = frozenset(),
) -> str:
    """Dispatch ``path`` to the reader for its extension."""
    path = Path(path)
    extension = path.suffix.lower()
    if extension == ".pdf":
        return read_pdf(path, max_pages=max_pdf_pages, max_bytes=max_bytes)
    if extension == ".docx":
        return read_docx(path, max_bytes=max_bytes)
    if extension in image_extensions:
        if image_reader is None:
            return ""
        return _cap(clean_text(image_reader(str(path))), max_bytes)
    return _cap(read_text_file(path, max_bytes=max_bytes), max_bytes)
