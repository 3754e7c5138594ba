"""SQLite store for file metadata, full-text index, vectors and icons."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import numpy as np

from deskfinder.index.vectors import encode_vector
from deskfinder.models import FileRecord, SearchResult
from deskfinder.utils.text import iter_terms

LOGGER = logging.getLogger(__name__)

KEYWORD_LIMIT = 50
KEYWORD_SCORE_SCALE = 1.5

_FILE_COLUMNS = "id, path, filename, extension, modified_time, summary, icon_data"


def _root_prefix(root: str | Path) -> str:
    root = os.fspath(root)
    return root if root.endswith(os.sep) else root + os.sep


def build_match_query(query: str) -> str:
    """Turn free text into an FTS5 expression of AND-joined prefix terms."""
    return " AND ".join(f'"{term}"*' for term in iter_terms(query))


def _row_to_record(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        path=row["path"],
        filename=row["filename"],
        extension=row["extension"] or "",
        modified_time=row["modified_time"],
        summary=row["summary"],
        icon_data=row["icon_data"],
    )


class SQLiteFileStore:
    """Persistence layer shared by the scanners, the vector index and search.

    The connection is shared between threads; every public method and every
    ``transaction()`` block holds a re-entrant lock, so statements from the
    two search branches never interleave on the connection.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL UNIQUE,
                    filename TEXT,
                    extension TEXT,
                    modified_time INTEGER,
                    summary TEXT,
                    icon_data TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS files_fts USING fts5(
                    filename, summary, path UNINDEXED,
                    content='files', content_rowid='id'
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS file_vectors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    file_id INTEGER NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    vector_blob BLOB NOT NULL,
                    UNIQUE(file_id, chunk_index),
                    FOREIGN KEY(file_id) REFERENCES files(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_file_vectors_file_id
                    ON file_vectors(file_id)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS extension_icons (
                    extension TEXT PRIMARY KEY,
                    icon_data TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS usage_counts (
                    path TEXT PRIMARY KEY,
                    count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            # The full-text index is only ever written through these triggers.
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS files_ai AFTER INSERT ON files BEGIN
                    INSERT INTO files_fts(rowid, filename, summary, path)
                    VALUES (new.id, new.filename, new.summary, new.path);
                END;
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS files_ad AFTER DELETE ON files BEGIN
                    INSERT INTO files_fts(files_fts, rowid, filename, summary, path)
                    VALUES ('delete', old.id, old.filename, old.summary, old.path);
                END;
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS files_au AFTER UPDATE ON files BEGIN
                    INSERT INTO files_fts(files_fts, rowid, filename, summary, path)
                    VALUES ('delete', old.id, old.filename, old.summary, old.path);
                    INSERT INTO files_fts(rowid, filename, summary, path)
                    VALUES (new.id, new.filename, new.summary, new.path);
                END;
                """
            )
            # A new modification time invalidates the summary and its vectors.
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS files_mtime_changed
                AFTER UPDATE OF modified_time ON files
                WHEN new.modified_time IS NOT old.modified_time BEGIN
                    DELETE FROM file_vectors WHERE file_id = new.id;
                END;
                """
            )

    # -- file records -------------------------------------------------------

    def load_file_map(self, root: str | Path) -> dict[str, int]:
        """Return ``path -> modified_time`` for every record under ``root``."""
        prefix = _root_prefix(root)
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, modified_time FROM files WHERE substr(path, 1, ?) = ?",
                (len(prefix), prefix),
            ).fetchall()
        return {row["path"]: row["modified_time"] for row in rows}

    def insert_file(
        self,
        path: str,
        filename: str,
        extension: str,
        modified_time: int,
        *,
        summary: str | None = None,
        icon_data: str | None = None,
    ) -> None:
        """Insert a record, or refresh it when the path already exists.

        A duplicate insert with an unchanged modification time is a no-op.
        Should be called within a transaction.
        """
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO files(path, filename, extension, modified_time, summary, icon_data)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    modified_time = excluded.modified_time,
                    summary = excluded.summary
                WHERE files.modified_time IS NOT excluded.modified_time
                """,
                (path, filename, extension, modified_time, summary, icon_data),
            )

    def update_modified(self, path: str, modified_time: int) -> None:
        """Record a new modification time and clear the summary."""
        with self._lock:
            self._conn.execute(
                "UPDATE files SET modified_time = ?, summary = NULL WHERE path = ?",
                (modified_time, path),
            )

    def upsert_application(
        self,
        path: str,
        filename: str,
        extension: str,
        modified_time: int,
        summary: str,
        icon_data: str | None,
    ) -> str:
        """Register a launchable entry.

        Returns 'inserted', 'updated', or 'unchanged' when the stored
        modification time already matches, in which case nothing is written.
        """
        with self._lock:
            existing = self._conn.execute(
                "SELECT modified_time FROM files WHERE path = ?", (path,)
            ).fetchone()
            if existing is None:
                self._conn.execute(
                    """
                    INSERT INTO files(path, filename, extension, modified_time, summary, icon_data)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (path, filename, extension, modified_time, summary, icon_data),
                )
                return "inserted"
            if existing["modified_time"] == modified_time:
                return "unchanged"
            self._conn.execute(
                """
                UPDATE files SET modified_time = ?, summary = ?, icon_data = ?
                WHERE path = ?
                """,
                (modified_time, summary, icon_data, path),
            )
            return "updated"

    def get_file(self, path: str) -> FileRecord | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE path = ?", (path,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def get_files(self, ids: Sequence[int]) -> dict[int, FileRecord]:
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE id IN ({placeholders})",
                tuple(ids),
            ).fetchall()
        return {row["id"]: _row_to_record(row) for row in rows}

    def count_files(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM files").fetchone()[0]

    def delete_paths(self, paths: Iterable[str]) -> int:
        """Delete records by path; vectors and full-text rows follow."""
        removed = 0
        with self.transaction() as conn:
            for path in paths:
                removed += conn.execute("DELETE FROM files WHERE path = ?", (path,)).rowcount
        return removed

    def remove_missing_files(self) -> int:
        """Remove records whose files no longer exist."""
        with self._lock:
            rows = self._conn.execute("SELECT path FROM files").fetchall()
        missing = [row["path"] for row in rows if not Path(row["path"]).exists()]
        return self.delete_paths(missing)

    # -- content ------------------------------------------------------------

    def pending_content(self, extensions: Iterable[str]) -> list[str]:
        """Paths with an unset summary whose extension is in ``extensions``."""
        wanted = sorted({ext.lower() for ext in extensions})
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT path FROM files
                WHERE summary IS NULL AND lower(extension) IN ({placeholders})
                ORDER BY id
                """,
                wanted,
            ).fetchall()
        return [row["path"] for row in rows]

    def set_summary(self, path: str, summary: str) -> None:
        """Should be called within a transaction."""
        with self._lock:
            self._conn.execute("UPDATE files SET summary = ? WHERE path = ?", (summary, path))

    # -- vectors ------------------------------------------------------------

    def files_needing_embedding(self) -> dict[int, str]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT id, summary FROM files
                WHERE summary IS NOT NULL AND summary != ''
                  AND id NOT IN (SELECT DISTINCT file_id FROM file_vectors)
                ORDER BY id
                """
            ).fetchall()
        return {row["id"]: row["summary"] for row in rows}

    def delete_vectors(self, file_id: int) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM file_vectors WHERE file_id = ?", (file_id,))

    def save_vector(self, file_id: int, chunk_index: int, vector: np.ndarray) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO file_vectors(file_id, chunk_index, vector_blob)
                VALUES (?, ?, ?)
                """,
                (file_id, chunk_index, sqlite3.Binary(encode_vector(vector))),
            )

    def iter_vectors(self) -> Iterator[tuple[int, int, bytes]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT file_id, chunk_index, vector_blob FROM file_vectors ORDER BY id"
            ).fetchall()
        for row in rows:
            yield row["file_id"], row["chunk_index"], bytes(row["vector_blob"])

    # -- keyword search -----------------------------------------------------

    def keyword_search(
        self,
        query: str,
        *,
        min_time: int = 0,
        max_time: int = 0,
        limit: int = KEYWORD_LIMIT,
    ) -> list[SearchResult]:
        """Full-text match on filename and summary, optionally date bounded."""
        match = build_match_query(query)
        if not match:
            return []

        sql = """
            SELECT f.path AS path,
                   COALESCE(snippet(files_fts, 1, '[', ']', '...', 15), '') AS snippet,
                   COALESCE(f.icon_data, '') AS icon_data,
                   COALESCE(f.extension, '') AS extension,
                   files_fts.rank AS rank
            FROM files_fts
            JOIN files f ON f.id = files_fts.rowid
            WHERE files_fts MATCH ?
        """
        args: list[object] = [match]
        if min_time > 0:
            sql += " AND f.modified_time >= ?"
            args.append(min_time)
        if max_time > 0:
            sql += " AND f.modified_time <= ?"
            args.append(max_time)
        sql += " ORDER BY files_fts.rank LIMIT ?"
        args.append(limit)

        with self._lock:
            rows = self._conn.execute(sql, args).fetchall()
        return [
            SearchResult(
                path=row["path"],
                snippet=row["snippet"],
                # bm25 ranks are negative, better matches more so
                score=abs(float(row["rank"])) * KEYWORD_SCORE_SCALE,
                extension=row["extension"],
                icon_data=row["icon_data"],
            )
            for row in rows
        ]

    # -- icons --------------------------------------------------------------

    def extension_icons(self) -> dict[str, str]:
        with self._lock:
            rows = self._conn.execute("SELECT extension, icon_data FROM extension_icons").fetchall()
        return {row["extension"]: row["icon_data"] for row in rows}

    def set_extension_icon(self, extension: str, icon_data: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO extension_icons(extension, icon_data) VALUES (?, ?)",
                (extension.lower(), icon_data),
            )

    def extensions_missing_icons(self) -> dict[str, str]:
        """Map each uncached lowercase extension to one sample path."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT lower(extension) AS ext, MIN(path) AS sample FROM files
                WHERE extension IS NOT NULL AND extension != ''
                  AND lower(extension) NOT IN (SELECT extension FROM extension_icons)
                GROUP BY lower(extension)
                ORDER BY ext
                """
            ).fetchall()
        return {row["ext"]: row["sample"] for row in rows}

    # -- usage --------------------------------------------------------------

    def increment_usage(self, path: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO usage_counts(path, count) VALUES (?, 1)
                ON CONFLICT(path) DO UPDATE SET count = count + 1
                """,
                (path,),
            )

    def usage_counts(self) -> dict[str, int]:
        with self._lock:
            rows = self._conn.execute("SELECT path, count FROM usage_counts").fetchall()
        return {row["path"]: row["count"] for row in rows}
