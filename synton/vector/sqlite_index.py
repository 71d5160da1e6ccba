"""SQLite-vec vector index for node embeddings."""

import json
import logging
import sqlite3
import struct
from pathlib import Path
from typing import Any, Mapping, Sequence

import sqlite_vec

from ..errors import InvalidConfigError, StorageError
from .index import VectorHit, check_dimension, matches_filter

log = logging.getLogger(__name__)


def serialize_vector(vec: Sequence[float]) -> bytes:
    """Serialize a vector to bytes for sqlite-vec."""
    return struct.pack(f"{len(vec)}f", *vec)


class SqliteVecIndex:
    """Persistent cosine-distance index backed by a ``vec0`` virtual table."""

    def __init__(self, db_path: Path | str, dimension: int = 384):
        if dimension < 1:
            raise InvalidConfigError(f"dimension must be >= 1, got {dimension}")
        self.db_path = Path(db_path)
        self._dimension = dimension
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def dimension(self) -> int:
        return self._dimension

    def _init_db(self):
        """Initialize the database schema."""
        conn = self._get_conn()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nodes (
                    id INTEGER PRIMARY KEY,
                    node_id TEXT UNIQUE NOT NULL,
                    node_type TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}'
                )
            """)
            conn.execute(f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS node_vectors USING vec0(
                    embedding float[{self._dimension}] distance_metric=cosine
                )
            """)
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to initialize {self.db_path}: {exc}") from exc
        finally:
            conn.close()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a connection with sqlite-vec loaded."""
        conn = sqlite3.connect(self.db_path)
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        return conn

    def upsert(
        self,
        node_id: str,
        vector: Sequence[float],
        metadata: Mapping[str, Any] | None = None,
    ) -> int:
        """Add or replace a node embedding.

        Returns:
            The row ID of the node
        """
        check_dimension(vector, self._dimension)
        meta = dict(metadata or {})
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM nodes WHERE node_id = ?", (node_id,))
            existing = cursor.fetchone()

            if existing:
                row_id = existing[0]
                cursor.execute(
                    "UPDATE nodes SET node_type = ?, metadata = ? WHERE id = ?",
                    (meta.get("node_type"), json.dumps(meta), row_id),
                )
                cursor.execute("DELETE FROM node_vectors WHERE rowid = ?", (row_id,))
            else:
                cursor.execute(
                    "INSERT INTO nodes (node_id, node_type, metadata) VALUES (?, ?, ?)",
                    (node_id, meta.get("node_type"), json.dumps(meta)),
                )
                row_id = cursor.lastrowid

            cursor.execute(
                "INSERT INTO node_vectors (rowid, embedding) VALUES (?, ?)",
                (row_id, serialize_vector(vector)),
            )
            conn.commit()
            return row_id
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to store vector for {node_id}: {exc}") from exc
        finally:
            conn.close()

    def remove(self, node_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM nodes WHERE node_id = ?", (node_id,))
            row = cursor.fetchone()
            if not row:
                return False
            cursor.execute("DELETE FROM nodes WHERE id = ?", (row[0],))
            cursor.execute("DELETE FROM node_vectors WHERE rowid = ?", (row[0],))
            conn.commit()
            return True
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to remove vector for {node_id}: {exc}") from exc
        finally:
            conn.close()

    def __len__(self) -> int:
        conn = self._get_conn()
        try:
            return conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0]
        finally:
            conn.close()

    def search(self, query: Sequence[float], k: int) -> list[VectorHit]:
        return self._search(query, None, k)

    def search_with_filter(
        self, query: Sequence[float], filter: Mapping[str, Any], k: int
    ) -> list[VectorHit]:
        return self._search(query, filter, k)

    def _search(
        self, query: Sequence[float], filter: Mapping[str, Any] | None, k: int
    ) -> list[VectorHit]:
        check_dimension(query, self._dimension)
        if k <= 0:
            return []

        conn = self._get_conn()
        try:
            # vec0 applies k before joins, so filtered searches scan every row.
            knn = k
            if filter:
                knn = max(k, conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0])
            if knn == 0:
                return []
            rows = conn.execute(
                """
                SELECT n.node_id, n.metadata, v.distance
                FROM node_vectors v
                JOIN nodes n ON n.id = v.rowid
                WHERE v.embedding MATCH ? AND k = ?
                ORDER BY v.distance
                """,
                (serialize_vector(query), knn),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Vector search failed: {exc}") from exc
        finally:
            conn.close()

        hits: list[VectorHit] = []
        for node_id, metadata, distance in rows:
            if filter and not matches_filter(json.loads(metadata or "{}"), filter):
                continue
            score = 1.0 - distance  # Convert distance to similarity
            hits.append((node_id, min(max(score, 0.0), 1.0)))
            if len(hits) >= k:
                break
        return hits
