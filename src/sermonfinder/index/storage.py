"""SQLite corpus store: documents, an FTS5 mirror and document embeddings."""

from __future__ import annotations

import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional, Sequence

import numpy as np

from sermonfinder.models import CorpusStats, Document, FullTextHit, VectorHit

# Columns callers may set through insert/update; never interpolate anything else.
DOCUMENT_COLUMNS = frozenset(
    {"path", "title", "content", "date", "bible_ref", "word_count", "hash"}
)
REQUIRED_COLUMNS = ("path", "title", "content", "hash")

FRENCH_STOPWORDS = frozenset(
    {
        # articles
        "le", "la", "les", "un", "une", "des", "du", "de", "l",
        # prepositions
        "à", "a", "au", "aux", "avec", "dans", "en", "par", "pour", "sur", "sous",
        "vers", "chez",
        # pronouns
        "je", "tu", "il", "elle", "on", "nous", "vous", "ils", "elles",
        "me", "te", "se", "lui", "leur", "moi", "toi", "soi",
        "ce", "cet", "cette", "ces", "ceci", "cela", "ça",
        "qui", "que", "quoi", "dont", "où",
        # possessives
        "mon", "ma", "mes", "ton", "ta", "tes", "son", "sa", "ses",
        "notre", "nos", "votre", "vos", "leurs",
        # conjunctions
        "et", "ou", "mais", "donc", "or", "ni", "car", "si", "comme", "quand", "lorsque",
        # common verbs
        "est", "sont", "suis", "es", "sommes", "êtes", "être", "etre",
        "ai", "as", "avons", "avez", "ont", "avoir",
        "fait", "faire", "fais", "faisons", "faites", "font",
        # adverbs and others
        "ne", "pas", "plus", "moins", "très", "bien", "mal", "tout", "tous", "toute",
        "toutes", "y", "là", "ici", "alors", "aussi", "encore", "même", "autre", "autres",
    }
)

_FTS_QUOTES = re.compile(r"['\"]")
_FTS_SPECIAL = re.compile(r"[(){}\[\]^~*?:\\]")


def build_fts_query(query: str, stopwords: frozenset[str] = FRENCH_STOPWORDS) -> Optional[str]:
    """Turn free text into a safe FTS5 MATCH expression.

    Every surviving term is quoted and prefix-matched (``"grace"*``); terms are
    ANDed. Returns None when nothing searchable is left.
    """
    cleaned = _FTS_SPECIAL.sub(" ", _FTS_QUOTES.sub("", query)).strip()
    if not cleaned:
        return None

    terms = [
        f'"{term}"*'
        for term in cleaned.split()
        if len(term) > 1
        and term.lower() not in stopwords
        and any(ch.isalnum() for ch in term)
    ]
    return " ".join(terms) or None


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        path=row["path"],
        title=row["title"],
        content=row["content"],
        hash=row["hash"],
        date=row["date"],
        bible_ref=row["bible_ref"],
        word_count=row["word_count"],
        indexed_at=row["indexed_at"],
        updated_at=row["updated_at"],
    )


class CorpusStore:
    """Persistence layer for documents, their full-text mirror and embeddings.

    One connection is shared by every caller; an ``RLock`` serialises access
    so the watcher thread and the main thread never interleave statements.

    Without an explicit ``dimension`` the vector size is taken from the
    embeddings already stored, or from the first one written.
    """

    def __init__(self, db_path: Path | str, *, dimension: Optional[int] = None) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
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
        """Commit on success, roll back on error; nested uses join the outer one."""
        with self._lock:
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._conn.rollback()
                raise
            self._depth -= 1
            if self._depth == 0:
                self._conn.commit()

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    date TEXT,
                    bible_ref TEXT,
                    word_count INTEGER NOT NULL DEFAULT 0,
                    hash TEXT NOT NULL,
                    indexed_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
                    title,
                    content,
                    bible_ref,
                    content='documents',
                    content_rowid='id',
                    tokenize='unicode61 remove_diacritics 2'
                )
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN
                    INSERT INTO documents_fts(rowid, title, content, bible_ref)
                    VALUES (new.id, new.title, new.content, new.bible_ref);
                END;
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN
                    INSERT INTO documents_fts(documents_fts, rowid, title, content, bible_ref)
                    VALUES ('delete', old.id, old.title, old.content, old.bible_ref);
                END;
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_au AFTER UPDATE ON documents BEGIN
                    INSERT INTO documents_fts(documents_fts, rowid, title, content, bible_ref)
                    VALUES ('delete', old.id, old.title, old.content, old.bible_ref);
                    INSERT INTO documents_fts(rowid, title, content, bible_ref)
                    VALUES (new.id, new.title, new.content, new.bible_ref);
                END;
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS document_embeddings (
                    document_id INTEGER PRIMARY KEY
                        REFERENCES documents(id) ON DELETE CASCADE,
                    embedding BLOB NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_date ON documents(date)")

    # ------------------------------------------------------------------ documents

    def insert_document(self, fields: Mapping[str, Any]) -> int:
        """Insert a document row and return its new id."""
        missing = [name for name in REQUIRED_COLUMNS if fields.get(name) is None]
        if missing:
            raise ValueError(f"Missing document fields: {', '.join(missing)}")

        columns = [name for name in fields if name in DOCUMENT_COLUMNS]
        placeholders = ", ".join("?" for _ in columns)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO documents ({', '.join(columns)}) VALUES ({placeholders})",
                [fields[name] for name in columns],
            )
            return int(cursor.lastrowid)

    def update_document(self, doc_id: int, fields: Mapping[str, Any]) -> bool:
        """Update allowed columns of a document; unknown keys are ignored."""
        columns = [name for name in fields if name in DOCUMENT_COLUMNS]
        if not columns:
            return False

        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE documents SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ?",
                [*(fields[name] for name in columns), doc_id],
            )
            return cursor.rowcount > 0

    def delete_document(self, doc_id: int) -> bool:
        """Delete a document; its FTS row and embedding go with it."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
            return cursor.rowcount > 0

    def delete_document_by_path(self, path: Path | str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (str(path),))
            return cursor.rowcount > 0

    def get_document(self, doc_id: int) -> Optional[Document]:
        row = self._fetchone("SELECT * FROM documents WHERE id = ?", (doc_id,))
        return _row_to_document(row) if row else None

    def get_document_by_path(self, path: Path | str) -> Optional[Document]:
        row = self._fetchone("SELECT * FROM documents WHERE path = ?", (str(path),))
        return _row_to_document(row) if row else None

    def list_documents(self, limit: Optional[int] = None) -> List[Document]:
        """All documents, newest first; undated documents come last, then by title."""
        sql = "SELECT * FROM documents ORDER BY date IS NULL, date DESC, title ASC, id ASC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return [_row_to_document(row) for row in self._fetchall(sql, params)]

    def recent_documents(self, limit: int) -> List[Document]:
        return self.list_documents(limit=limit)

    def list_paths(self) -> List[tuple[int, str]]:
        return [(row["id"], row["path"]) for row in self._fetchall("SELECT id, path FROM documents")]

    def count_documents(self) -> int:
        row = self._fetchone("SELECT COUNT(*) AS count FROM documents")
        return int(row["count"])

    def corpus_stats(self) -> CorpusStats:
        row = self._fetchone(
            """
            SELECT
                COUNT(*) AS total_documents,
                COALESCE(SUM(word_count), 0) AS total_words,
                MIN(date) AS oldest_date,
                MAX(date) AS newest_date
            FROM documents
            """
        )
        return CorpusStats(
            total_documents=int(row["total_documents"]),
            total_words=int(row["total_words"]),
            oldest_date=row["oldest_date"],
            newest_date=row["newest_date"],
        )

    # --------------------------------------------------------------------- search

    def full_text_search(self, query: str, limit: int = 20) -> List[FullTextHit]:
        """BM25-ranked keyword search; ``rank`` is bm25(), lower is better."""
        match = build_fts_query(query)
        if match is None:
            return []

        rows = self._fetchall(
            """
            SELECT
                d.*,
                bm25(documents_fts) AS rank,
                snippet(documents_fts, 1, '<mark>', '</mark>', '...', 32) AS snippet
            FROM documents_fts
            JOIN documents d ON d.id = documents_fts.rowid
            WHERE documents_fts MATCH ?
            ORDER BY rank, d.id
            LIMIT ?
            """,
            (match, limit),
        )
        return [
            FullTextHit(document=_row_to_document(row), rank=float(row["rank"]), snippet=row["snippet"])
            for row in rows
        ]

    def search_by_reference(self, ref: str) -> List[Document]:
        """Documents whose scripture reference contains ``ref`` (wildcards escaped)."""
        escaped = re.sub(r"([%_\\])", r"\\\1", ref)
        rows = self._fetchall(
            "SELECT * FROM documents WHERE bible_ref LIKE ? ESCAPE '\\' "
            "ORDER BY date IS NULL, date DESC, title ASC",
            (f"%{escaped}%",),
        )
        return [_row_to_document(row) for row in rows]

    def vector_search(self, embedding: np.ndarray, limit: int = 10) -> List[VectorHit]:
        """Nearest documents by cosine distance, closest first."""
        query = np.asarray(embedding, dtype="float32").ravel()
        self._check_dimension(query)
        rows = self._fetchall(
            """
            SELECT d.*, e.embedding AS embedding
            FROM document_embeddings e
            JOIN documents d ON d.id = e.document_id
            ORDER BY d.id
            """
        )
        if not rows or limit <= 0:
            return []

        matrix = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
        norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(query) or 1.0)
        norms[norms == 0] = 1.0
        distances = 1.0 - (matrix @ query) / norms

        order = np.argsort(distances, kind="stable")[:limit]
        return [
            VectorHit(document=_row_to_document(rows[idx]), distance=float(distances[idx]))
            for idx in order
        ]

    # ----------------------------------------------------------------- embeddings

    def _expected_dimension(self) -> Optional[int]:
        if self.dimension is None:
            row = self._fetchone(
                "SELECT length(embedding) AS size FROM document_embeddings LIMIT 1"
            )
            if row is not None:
                self.dimension = int(row["size"]) // 4
        return self.dimension

    def _check_dimension(self, vector: np.ndarray) -> None:
        expected = self._expected_dimension()
        if expected is not None and vector.shape[0] != expected:
            raise ValueError(f"Embedding has {vector.shape[0]} dimensions, expected {expected}")

    def upsert_embedding(self, doc_id: int, embedding: np.ndarray) -> None:
        vector = np.asarray(embedding, dtype="float32").ravel()
        with self.transaction() as conn:
            self._check_dimension(vector)
            if self.dimension is None:
                self.dimension = int(vector.shape[0])
            conn.execute(
                """
                INSERT INTO document_embeddings (document_id, embedding)
                VALUES (?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    embedding = excluded.embedding,
                    created_at = CURRENT_TIMESTAMP
                """,
                (doc_id, sqlite3.Binary(vector.tobytes())),
            )

    def delete_embedding(self, doc_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM document_embeddings WHERE document_id = ?", (doc_id,)
            )
            return cursor.rowcount > 0

    def has_embedding(self, doc_id: int) -> bool:
        row = self._fetchone(
            "SELECT 1 FROM document_embeddings WHERE document_id = ?", (doc_id,)
        )
        return row is not None

    def documents_without_embedding(self) -> List[Document]:
        rows = self._fetchall(
            """
            SELECT d.* FROM documents d
            LEFT JOIN document_embeddings e ON d.id = e.document_id
            WHERE e.document_id IS NULL
            ORDER BY d.id
            """
        )
        return [_row_to_document(row) for row in rows]

    def embedding_stats(self) -> dict[str, int]:
        row = self._fetchone(
            """
            SELECT
                (SELECT COUNT(*) FROM documents) AS total,
                (SELECT COUNT(*) FROM document_embeddings) AS indexed
            """
        )
        return {"total": int(row["total"]), "indexed": int(row["indexed"])}

    # ------------------------------------------------------------------- settings

    def get_setting(self, key: str) -> Optional[str]:
        row = self._fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def delete_setting(self, key: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    def all_settings(self) -> dict[str, str]:
        return {row["key"]: row["value"] for row in self._fetchall("SELECT key, value FROM settings")}
