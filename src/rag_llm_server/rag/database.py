"""Document metadata store: one row per ingested document, soft-deleted only."""

import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extras import RealDictCursor

from ..db import PostgresDatabase
from ..errors import DuplicateDocumentError, MetadataStoreError, NotFoundError
from ..logger import logger
from .models import DocumentRecord

_COLUMNS = """
    document_id AS id, file_name, chunk_count, file_size AS file_size_bytes,
    file_type, description, is_active AS active, uploaded_at, updated_at
"""


class DocumentMetadataStore(ABC):
    """Persistence for DocumentRecords.

    Records move from active to inactive via soft_delete() and are never
    removed. Ids are unique across active and inactive records.
    """

    @abstractmethod
    def create(self, record: DocumentRecord) -> DocumentRecord:
        """Persist a new record.

        Raises:
            DuplicateDocumentError: If any record already uses ``record.id``.
        """

    @abstractmethod
    def get(self, document_id: str) -> DocumentRecord | None:
        """Return the record with this id, active or not."""

    @abstractmethod
    def exists(self, document_id: str) -> bool:
        """True if any record, active or not, has this id."""

    @abstractmethod
    def list_active(self) -> list[DocumentRecord]:
        """Active records, most recently uploaded first."""

    @abstractmethod
    def list_all(self) -> list[DocumentRecord]:
        """All records, most recently uploaded first."""

    @abstractmethod
    def soft_delete(self, document_id: str) -> DocumentRecord:
        """Mark a record inactive and return it.

        Deleting an already inactive record returns it unchanged.

        Raises:
            NotFoundError: If no record has this id.
        """

    @abstractmethod
    def count_active(self) -> int:
        """Number of active records."""

    @abstractmethod
    def sum_active_chunks(self) -> int:
        """Total chunk_count over active records."""

    def active_ids(self) -> set[str]:
        return {record.id for record in self.list_active()}


class InMemoryDocumentStore(DocumentMetadataStore):
    """Process-local store; the lock makes check-and-insert atomic."""

    def __init__(self):
        self._records: dict[str, DocumentRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: DocumentRecord) -> DocumentRecord:
        with self._lock:
            if record.id in self._records:
                raise DuplicateDocumentError(
                    f"Document ID already exists: {record.id}", document_id=record.id
                )
            self._records[record.id] = record.model_copy()
        logger.info("document metadata saved", document_id=record.id, backend="memory")
        return record

    def get(self, document_id: str) -> DocumentRecord | None:
        with self._lock:
            record = self._records.get(document_id)
        return record.model_copy() if record else None

    def exists(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._records

    def _sorted(self, active_only: bool) -> list[DocumentRecord]:
        with self._lock:
            records = [
                r.model_copy()
                for r in reversed(self._records.values())
                if r.active or not active_only
            ]
        # Ties on uploaded_at list the latest insert first
        return sorted(records, key=lambda r: r.uploaded_at, reverse=True)

    def list_active(self) -> list[DocumentRecord]:
        return self._sorted(active_only=True)

    def list_all(self) -> list[DocumentRecord]:
        return self._sorted(active_only=False)

    def soft_delete(self, document_id: str) -> DocumentRecord:
        with self._lock:
            record = self._records.get(document_id)
            if record is None:
                raise NotFoundError(
                    f"Document not found: {document_id}", document_id=document_id
                )
            if record.active:
                record = record.model_copy(
                    update={"active": False, "updated_at": datetime.now(timezone.utc)}
                )
                self._records[document_id] = record
                logger.info("document soft deleted", document_id=document_id)
            return record.model_copy()

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.active)

    def sum_active_chunks(self) -> int:
        with self._lock:
            return sum(r.chunk_count for r in self._records.values() if r.active)


class PgDocumentStore(DocumentMetadataStore):
    """Metadata store on the ``document_metadata`` table.

    Uniqueness is enforced by the table's unique constraint on
    ``document_id``, which also decides concurrent ingestion races.
    """

    def __init__(self, database: PostgresDatabase):
        self.database = database

    def _fetch(self, sql: str, params: tuple = (), one: bool = False):
        try:
            with self.database.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchone() if one else cur.fetchall()
                conn.rollback()
        except psycopg2.Error as e:
            logger.error("metadata query failed", error=str(e))
            raise MetadataStoreError(f"Metadata store query failed: {e}") from e
        return rows

    def create(self, record: DocumentRecord) -> DocumentRecord:
        start = time.perf_counter()
        try:
            with self.database.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO document_metadata
                            (document_id, file_name, chunk_count, file_size, file_type,
                             description, is_active, uploaded_at, updated_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (
                            record.id,
                            record.file_name,
                            record.chunk_count,
                            record.file_size_bytes,
                            record.file_type,
                            record.description,
                            record.active,
                            record.uploaded_at,
                            record.updated_at,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except pg_errors.UniqueViolation as e:
            logger.warning("document id already exists", document_id=record.id)
            raise DuplicateDocumentError(
                f"Document ID already exists: {record.id}", document_id=record.id
            ) from e
        except psycopg2.Error as e:
            logger.error("document metadata insert failed", document_id=record.id, error=str(e))
            raise MetadataStoreError(
                f"Failed to save document metadata: {e}", document_id=record.id
            ) from e

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "document metadata saved",
            document_id=record.id,
            chunk_count=record.chunk_count,
            duration_ms=round(duration_ms, 2),
        )
        return DocumentRecord(**row)

    def get(self, document_id: str) -> DocumentRecord | None:
        row = self._fetch(
            f"SELECT {_COLUMNS} FROM document_metadata WHERE document_id = %s",
            (document_id,),
            one=True,
        )
        return DocumentRecord(**row) if row else None

    def exists(self, document_id: str) -> bool:
        row = self._fetch(
            "SELECT 1 AS found FROM document_metadata WHERE document_id = %s",
            (document_id,),
            one=True,
        )
        return row is not None

    def list_active(self) -> list[DocumentRecord]:
        rows = self._fetch(
            f"""
            SELECT {_COLUMNS} FROM document_metadata
            WHERE is_active = TRUE
            ORDER BY uploaded_at DESC, document_metadata.id DESC
            """
        )
        return [DocumentRecord(**row) for row in rows]

    def list_all(self) -> list[DocumentRecord]:
        rows = self._fetch(
            f"""
            SELECT {_COLUMNS} FROM document_metadata
            ORDER BY uploaded_at DESC, document_metadata.id DESC
            """
        )
        return [DocumentRecord(**row) for row in rows]

    def soft_delete(self, document_id: str) -> DocumentRecord:
        start = time.perf_counter()
        try:
            with self.database.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        UPDATE document_metadata
                        SET is_active = FALSE, updated_at = NOW()
                        WHERE document_id = %s AND is_active = TRUE
                        RETURNING {_COLUMNS}
                        """,
                        (document_id,),
                    )
                    row = cur.fetchone()
                conn.commit()
        except psycopg2.Error as e:
            logger.error("document soft delete failed", document_id=document_id, error=str(e))
            raise MetadataStoreError(
                f"Failed to delete document: {e}", document_id=document_id
            ) from e

        if row is None:
            # Either unknown or already inactive
            existing = self.get(document_id)
            if existing is None:
                raise NotFoundError(
                    f"Document not found: {document_id}", document_id=document_id
                )
            return existing

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "document soft deleted",
            document_id=document_id,
            duration_ms=round(duration_ms, 2),
        )
        return DocumentRecord(**row)

    def count_active(self) -> int:
        row = self._fetch(
            "SELECT COUNT(*) AS total FROM document_metadata WHERE is_active = TRUE",
            one=True,
        )
        return int(row["total"])

    def sum_active_chunks(self) -> int:
        row = self._fetch(
            """
            SELECT COALESCE(SUM(chunk_count), 0) AS total
            FROM document_metadata WHERE is_active = TRUE
            """,
            one=True,
        )
        return int(row["total"])

    def active_ids(self) -> set[str]:
        rows = self._fetch(
            "SELECT document_id FROM document_metadata WHERE is_active = TRUE"
        )
        return {row["document_id"] for row in rows}
