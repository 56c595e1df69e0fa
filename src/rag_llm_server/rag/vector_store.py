"""Vector store adapters: insert-with-metadata and filtered top-K similarity search.

Scores are the relevance form of cosine similarity, ``(1 + cos) / 2``, so
they fall in [0, 1] with 1.0 for identical directions.
"""

import threading
import time
import uuid
from abc import ABC, abstractmethod

import numpy as np
import psycopg2
from psycopg2.extras import Json, RealDictCursor

from ..db import PostgresDatabase
from ..errors import ConfigurationError, VectorStoreError
from ..logger import logger
from .models import Chunk, SearchMatch


def _clamp_score(score: float) -> float:
    return min(1.0, max(0.0, float(score)))


class VectorStore(ABC):
    """Stores chunk embeddings with their payload metadata."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Dimension every stored and query vector must have."""

    @abstractmethod
    def add(self, embedding: list[float], chunk: Chunk) -> str:
        """Insert one chunk's vector and return its generated embedding id."""

    @abstractmethod
    def search(
        self,
        query_embedding: list[float],
        max_results: int,
        min_score: float,
        document_id: str | None = None,
    ) -> list[SearchMatch]:
        """Top matches with ``score >= min_score``, best first.

        Args:
            query_embedding: Query vector.
            max_results: Maximum number of matches to return.
            min_score: Minimum relevance score in [0, 1].
            document_id: When set, only chunks of this document are considered.
        """

    @abstractmethod
    def count(self, document_id: str | None = None) -> int:
        """Number of stored vectors, optionally for one document."""

    @abstractmethod
    def document_ids(self) -> set[str]:
        """Distinct document ids referenced by stored vectors."""

    def _check_dimension(self, vector: list[float], what: str) -> None:
        if len(vector) != self.dimension:
            raise VectorStoreError(
                f"{what} has dimension {len(vector)}, vector store expects {self.dimension}"
            )


class InMemoryVectorStore(VectorStore):
    """numpy-backed store kept in process memory."""

    def __init__(self, dimension: int):
        if dimension <= 0:
            raise ConfigurationError("Vector dimension must be positive")
        self._dimension = dimension
        self._ids: list[str] = []
        self._vectors: list[np.ndarray] = []
        self._texts: list[str] = []
        self._metadata: list[dict] = []
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    def add(self, embedding: list[float], chunk: Chunk) -> str:
        self._check_dimension(embedding, "Embedding")
        embedding_id = str(uuid.uuid4())
        with self._lock:
            self._ids.append(embedding_id)
            self._vectors.append(np.asarray(embedding, dtype=np.float32))
            self._texts.append(chunk.text)
            self._metadata.append(chunk.payload_metadata())
        return embedding_id

    def search(
        self,
        query_embedding: list[float],
        max_results: int,
        min_score: float,
        document_id: str | None = None,
    ) -> list[SearchMatch]:
        self._check_dimension(query_embedding, "Query embedding")
        with self._lock:
            candidates = [
                i
                for i, meta in enumerate(self._metadata)
                if document_id is None or meta.get("document_id") == document_id
            ]
            if not candidates:
                return []
            matrix = np.stack([self._vectors[i] for i in candidates])
            entries = [(self._ids[i], self._texts[i], dict(self._metadata[i])) for i in candidates]

        query = np.asarray(query_embedding, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            cosine = np.where(norms > 0, matrix @ query / norms, 0.0)
        scores = (1.0 + cosine) / 2.0

        order = np.argsort(-scores, kind="stable")
        matches = []
        for i in order:
            score = _clamp_score(scores[i])
            if score < min_score:
                break
            embedding_id, text, metadata = entries[i]
            matches.append(
                SearchMatch(embedding_id=embedding_id, text=text, metadata=metadata, score=score)
            )
            if len(matches) >= max_results:
                break
        return matches

    def count(self, document_id: str | None = None) -> int:
        with self._lock:
            if document_id is None:
                return len(self._ids)
            return sum(1 for m in self._metadata if m.get("document_id") == document_id)

    def document_ids(self) -> set[str]:
        with self._lock:
            return {m["document_id"] for m in self._metadata if m.get("document_id")}


class PgVectorStore(VectorStore):
    """pgvector-backed store, one row per chunk in a configurable table."""

    def __init__(self, database: PostgresDatabase, table: str = "embeddings", dimension: int = 1536):
        if not table.replace("_", "").isalnum():
            raise ConfigurationError(f"Invalid vector table name: {table}")
        self.database = database
        self.table = table
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def ensure_table(self) -> None:
        """Create the vector table if missing and verify its column dimension.

        Raises:
            ConfigurationError: If an existing table was created with a
                different dimension.
        """
        try:
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                    cur.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self.table} (
                            embedding_id UUID PRIMARY KEY,
                            embedding vector({self._dimension}),
                            text TEXT,
                            metadata JSONB
                        )
                        """
                    )
                    cur.execute(
                        f"""
                        CREATE INDEX IF NOT EXISTS idx_{self.table}_document_id
                        ON {self.table} ((metadata->>'document_id'))
                        """
                    )
                    cur.execute(
                        """
                        SELECT atttypmod FROM pg_attribute
                        WHERE attrelid = %s::regclass AND attname = 'embedding'
                        """,
                        (self.table,),
                    )
                    row = cur.fetchone()
                conn.commit()
        except psycopg2.Error as e:
            logger.error("vector table setup failed", table=self.table, error=str(e))
            raise VectorStoreError(f"Failed to prepare vector table: {e}") from e

        existing_dimension = row[0] if row else None
        if existing_dimension and existing_dimension > 0 and existing_dimension != self._dimension:
            raise ConfigurationError(
                f"Vector table '{self.table}' has dimension {existing_dimension}, "
                f"configured VECTOR_DIMENSION is {self._dimension}"
            )
        logger.info("vector table ready", table=self.table, dimension=self._dimension)

    def add(self, embedding: list[float], chunk: Chunk) -> str:
        self._check_dimension(embedding, "Embedding")
        embedding_id = str(uuid.uuid4())
        start = time.perf_counter()
        try:
            with self.database.connection(vector=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO {self.table} (embedding_id, embedding, text, metadata)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (
                            embedding_id,
                            np.asarray(embedding, dtype=np.float32),
                            chunk.text,
                            Json(chunk.payload_metadata()),
                        ),
                    )
                conn.commit()
        except psycopg2.Error as e:
            logger.error(
                "vector insert failed",
                document_id=chunk.source_document_id,
                chunk_index=chunk.chunk_index,
                error=str(e),
            )
            raise VectorStoreError(
                f"Failed to store chunk {chunk.chunk_index}: {e}",
                document_id=chunk.source_document_id,
            ) from e

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "vector inserted",
            document_id=chunk.source_document_id,
            chunk_index=chunk.chunk_index,
            duration_ms=round(duration_ms, 2),
        )
        return embedding_id

    def search(
        self,
        query_embedding: list[float],
        max_results: int,
        min_score: float,
        document_id: str | None = None,
    ) -> list[SearchMatch]:
        self._check_dimension(query_embedding, "Query embedding")
        query = np.asarray(query_embedding, dtype=np.float32)

        where = "(2 - (embedding <=> %s)) / 2 >= %s"
        params: list = [query, query, min_score]
        if document_id is not None:
            where += " AND metadata->>'document_id' = %s"
            params.append(document_id)
        params.extend([query, max_results])

        start = time.perf_counter()
        try:
            with self.database.connection(vector=True) as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        SELECT embedding_id, text, metadata,
                               (2 - (embedding <=> %s)) / 2 AS score
                        FROM {self.table}
                        WHERE {where}
                        ORDER BY embedding <=> %s
                        LIMIT %s
                        """,
                        params,
                    )
                    rows = cur.fetchall()
                conn.rollback()
        except psycopg2.Error as e:
            logger.error("similarity search failed", document_id=document_id, error=str(e))
            raise VectorStoreError(f"Similarity search failed: {e}", document_id=document_id) from e

        results = [
            SearchMatch(
                embedding_id=str(row["embedding_id"]),
                text=row["text"] or "",
                metadata=row["metadata"] or {},
                score=_clamp_score(row["score"]),
            )
            for row in rows
        ]

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "similarity search completed",
            max_results=max_results,
            min_score=min_score,
            document_id=document_id,
            results_count=len(results),
            duration_ms=round(duration_ms, 2),
        )
        return results

    def count(self, document_id: str | None = None) -> int:
        sql = f"SELECT COUNT(*) FROM {self.table}"
        params: tuple = ()
        if document_id is not None:
            sql += " WHERE metadata->>'document_id' = %s"
            params = (document_id,)
        try:
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    total = cur.fetchone()[0]
                conn.rollback()
        except psycopg2.Error as e:
            raise VectorStoreError(f"Vector count failed: {e}", document_id=document_id) from e
        return int(total)

    def document_ids(self) -> set[str]:
        try:
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        SELECT DISTINCT metadata->>'document_id' FROM {self.table}
                        WHERE metadata ? 'document_id'
                        """
                    )
                    rows = cur.fetchall()
                conn.rollback()
        except psycopg2.Error as e:
            raise VectorStoreError(f"Listing vector document ids failed: {e}") from e
        return {row[0] for row in rows if row[0]}
