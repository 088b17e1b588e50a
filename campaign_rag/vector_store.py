# =============================================================================
# Vector Store Module
# =============================================================================
# Persistent storage for chunk records and per-document index metadata,
# with brute-force cosine similarity search.
#
# Each world (campaign) gets its own SQLite file with two tables:
#   vectors    : one row per chunk, keyed by "{type}:{documentId}:{index}",
#                with secondary indexes on document_id and document_type
#   index_meta : one row per source document, keyed by (type, documentId)
#
# Journals and actors come from separate roots, so the same document id can
# exist once per type. Lookups and deletions take an optional type to tell
# them apart.
#
# A campaign has hundreds to a few thousand chunks, so scoring every row
# with numpy is fast enough and keeps search exact and deterministic.

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

import numpy as np

from campaign_rag.config import get_storage_dir, get_world_id, safe_world_name
from campaign_rag.exceptions import NotInitializedError, StoreError
from campaign_rag.models import (
    ChunkRecord,
    DocumentType,
    IndexMeta,
    SearchResult,
    StoreStats,
    metadata_from_dict,
    metadata_to_dict,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS vectors (
    id            TEXT PRIMARY KEY,
    document_id   TEXT NOT NULL,
    document_type TEXT NOT NULL,
    document_name TEXT NOT NULL,
    folder_name   TEXT NOT NULL,
    chunk_index   INTEGER NOT NULL,
    text          TEXT NOT NULL,
    vector        BLOB NOT NULL,
    metadata      TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_vectors_document_id ON vectors (document_id);
CREATE INDEX IF NOT EXISTS idx_vectors_document_type ON vectors (document_type);

CREATE TABLE IF NOT EXISTS index_meta (
    document_id   TEXT NOT NULL,
    document_type TEXT NOT NULL,
    document_name TEXT NOT NULL,
    last_modified REAL NOT NULL,
    chunk_count   INTEGER NOT NULL,
    PRIMARY KEY (document_type, document_id)
);
"""

VECTOR_DTYPE = np.float64


# =============================================================================
# Math helpers
# =============================================================================

def cosine_similarity(a, b):
    """
    Cosine similarity of two vectors: dot(a, b) / (|a| * |b|).

    Returns 0.0 instead of failing when the vectors have different lengths
    (e.g. rows left over from another embedding model) or when either one
    has zero norm.

    Args:
        a: Sequence of floats
        b: Sequence of floats

    Returns:
        float: Similarity in [-1, 1]
    """
    a = np.asarray(a, dtype=VECTOR_DTYPE)
    b = np.asarray(b, dtype=VECTOR_DTYPE)

    if a.shape != b.shape:
        return 0.0

    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0

    return float(np.clip(np.dot(a, b) / denominator, -1.0, 1.0))


def _score_rows(query, vectors):
    """Cosine similarity of `query` against every vector, 0.0 where undefined."""
    scores = np.zeros(len(vectors), dtype=VECTOR_DTYPE)
    query_norm = np.linalg.norm(query)
    if query_norm == 0:
        return scores

    same_length = [i for i, vector in enumerate(vectors) if vector.shape == query.shape]
    if not same_length:
        return scores

    matrix = np.vstack([vectors[i] for i in same_length])
    denominators = np.linalg.norm(matrix, axis=1) * query_norm
    dots = matrix @ query

    with np.errstate(divide='ignore', invalid='ignore'):
        similarity = np.where(denominators > 0, dots / denominators, 0.0)

    scores[same_length] = np.clip(similarity, -1.0, 1.0)
    return scores


def _encode_vector(vector):
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def _decode_vector(blob):
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


# =============================================================================
# Store
# =============================================================================

class VectorStore:
    """
    SQLite-backed vector store for one world.

    Call open() before anything else; every other method raises
    NotInitializedError until then (and again after close()).
    The store is an owned handle: create one per world and pass it to the
    services that need it.
    """

    def __init__(self, db_path):
        self.db_path = str(db_path)
        self._conn = None
        self._lock = threading.RLock()
        # Held by whoever is rebuilding this store's index
        self.reindex_lock = threading.Lock()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ---- Lifecycle ----

    @property
    def is_open(self):
        return self._conn is not None

    def open(self):
        """Open the database and create tables and indexes on first use."""
        with self._lock:
            if self._conn is not None:
                return

            try:
                if self.db_path != ':memory:':
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.executescript(SCHEMA)
                conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to open vector database {self.db_path}: {e}") from e

            self._conn = conn

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _ensure_open(self):
        if self._conn is None:
            raise NotInitializedError("VectorStore not opened. Call open() first.")
        return self._conn

    @contextmanager
    def _transaction(self, action):
        """Run a block in one transaction, turning SQLite errors into StoreError."""
        with self._lock:
            conn = self._ensure_open()
            try:
                with conn:
                    yield conn
            except sqlite3.Error as e:
                raise StoreError(f"Failed to {action}: {e}") from e

    # ---- Chunk records ----

    def upsert_vectors(self, entries):
        """
        Insert or replace chunk records by id.

        All entries are written in a single transaction.

        Args:
            entries: Iterable of ChunkRecord
        """
        rows = [
            (
                entry.id,
                entry.document_id,
                DocumentType(entry.document_type).value,
                entry.document_name,
                entry.folder_name,
                entry.chunk_index,
                entry.text,
                _encode_vector(entry.vector),
                json.dumps(metadata_to_dict(entry.metadata), ensure_ascii=False),
            )
            for entry in entries
        ]
        if not rows:
            self._ensure_open()
            return

        with self._transaction("upsert vectors") as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO vectors
                (id, document_id, document_type, document_name, folder_name,
                 chunk_index, text, vector, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

    def delete_by_document(self, document_id, document_type=None):
        """
        Remove every chunk record belonging to a document.

        Args:
            document_id: The document's id
            document_type: Only delete chunks of this type (all types if None)

        Returns:
            int: Number of rows deleted
        """
        where, params = _document_filter(document_id, document_type)
        with self._transaction("delete vectors") as conn:
            cursor = conn.execute(f"DELETE FROM vectors WHERE {where}", params)
            return cursor.rowcount

    def get_vectors_by_document(self, document_id, document_type=None):
        """Return a document's chunk records in reading order."""
        where, params = _document_filter(document_id, document_type)
        with self._transaction("read vectors") as conn:
            rows = conn.execute(
                f"SELECT * FROM vectors WHERE {where} ORDER BY chunk_index", params
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    # ---- Index metadata ----

    def set_index_meta(self, meta):
        with self._transaction("set index meta") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO index_meta
                (document_id, document_type, document_name, last_modified, chunk_count)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    meta.document_id,
                    DocumentType(meta.document_type).value,
                    meta.document_name,
                    meta.last_modified,
                    meta.chunk_count,
                ),
            )

    def get_index_meta(self, document_id, document_type=None):
        """Return the IndexMeta for a document, or None if it isn't indexed."""
        where, params = _document_filter(document_id, document_type)
        with self._transaction("get index meta") as conn:
            row = conn.execute(f"SELECT * FROM index_meta WHERE {where}", params).fetchone()
        return _row_to_meta(row) if row else None

    def get_all_index_meta(self):
        with self._transaction("get all index meta") as conn:
            rows = conn.execute("SELECT * FROM index_meta").fetchall()
        return [_row_to_meta(row) for row in rows]

    def delete_index_meta(self, document_id, document_type=None):
        where, params = _document_filter(document_id, document_type)
        with self._transaction("delete index meta") as conn:
            conn.execute(f"DELETE FROM index_meta WHERE {where}", params)

    # ---- Search ----

    def search(self, query_vector, top_k=5, document_type=None):
        """
        Rank stored chunks by cosine similarity to a query vector.

        Every row is scored (only rows of `document_type` when a filter is
        given, using the type index). Rows whose vector length differs from
        the query score 0.

        Args:
            query_vector: The query embedding
            top_k: Maximum number of results
            document_type: Optional DocumentType (or its string value) to filter by

        Returns:
            list: SearchResult objects, highest score first
        """
        if top_k <= 0:
            self._ensure_open()
            return []

        with self._transaction("search") as conn:
            if document_type:
                rows = conn.execute(
                    "SELECT * FROM vectors WHERE document_type = ?",
                    (DocumentType(document_type).value,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM vectors").fetchall()

        if not rows:
            return []

        query = np.asarray(query_vector, dtype=VECTOR_DTYPE)
        scores = _score_rows(query, [_decode_vector(row['vector']) for row in rows])

        # Stable sort keeps storage order among equal scores
        ranked = np.argsort(-scores, kind='stable')[:top_k]

        return [
            SearchResult(entry=_row_to_record(rows[i]), score=float(scores[i]))
            for i in ranked
        ]

    # ---- Statistics ----

    def get_stats(self):
        """
        Count stored chunks and indexed documents.

        Returns:
            StoreStats: total_vectors, total_documents and documents per type
        """
        with self._transaction("read stats") as conn:
            total_vectors = conn.execute("SELECT COUNT(*) FROM vectors").fetchone()[0]
            meta_rows = conn.execute("SELECT document_type FROM index_meta").fetchall()

        by_type = {}
        for row in meta_rows:
            by_type[row['document_type']] = by_type.get(row['document_type'], 0) + 1

        return StoreStats(
            total_vectors=total_vectors,
            total_documents=len(meta_rows),
            by_type=by_type,
        )

    # ---- Clear ----

    def clear(self):
        """Empty both tables in one transaction."""
        with self._transaction("clear store") as conn:
            conn.execute("DELETE FROM vectors")
            conn.execute("DELETE FROM index_meta")


def _document_filter(document_id, document_type=None):
    """WHERE clause and parameters selecting one document, optionally of one type."""
    if document_type is None:
        return "document_id = ?", (document_id,)
    return "document_id = ? AND document_type = ?", (document_id, DocumentType(document_type).value)


def _row_to_record(row):
    return ChunkRecord(
        id=row['id'],
        document_id=row['document_id'],
        document_type=DocumentType(row['document_type']),
        document_name=row['document_name'],
        folder_name=row['folder_name'],
        chunk_index=row['chunk_index'],
        text=row['text'],
        vector=_decode_vector(row['vector']).tolist(),
        metadata=metadata_from_dict(json.loads(row['metadata'] or '{}')),
    )


def _row_to_meta(row):
    return IndexMeta(
        document_id=row['document_id'],
        document_type=DocumentType(row['document_type']),
        document_name=row['document_name'],
        last_modified=row['last_modified'],
        chunk_count=row['chunk_count'],
    )


def get_store_path(config, world_id=None):
    """
    Path of the SQLite file for a world.

    Args:
        config: Configuration dictionary with paths.storage_dir
        world_id: World identifier; defaults to config['world_id']

    Returns:
        Path: e.g. <project>/data/vectors/vectors-my_world.sqlite3
    """
    safe_world = safe_world_name(get_world_id(config, world_id))
    return get_storage_dir(config) / f"vectors-{safe_world}.sqlite3"


def create_vector_store(config, world_id=None):
    """Create (but don't open) the vector store for a world."""
    return VectorStore(get_store_path(config, world_id))
