"""Tests for document metadata stores."""

from datetime import datetime, timedelta, timezone

import pytest

from rag_llm_server.errors import DuplicateDocumentError, NotFoundError
from rag_llm_server.rag.database import InMemoryDocumentStore, PgDocumentStore
from rag_llm_server.rag.models import DocumentRecord

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(document_id: str, minutes: int = 0, chunk_count: int = 2) -> DocumentRecord:
    uploaded_at = BASE_TIME + timedelta(minutes=minutes)
    return DocumentRecord(
        id=document_id,
        file_name=f"{document_id}.pdf",
        chunk_count=chunk_count,
        file_size_bytes=1024,
        file_type="pdf",
        description="quarterly report",
        uploaded_at=uploaded_at,
        updated_at=uploaded_at,
    )


class StoreContract:
    """Behaviour shared by every DocumentMetadataStore."""

    def test_create_and_get(self, store):
        store.create(_record("doc-1"))
        record = store.get("doc-1")
        assert record.id == "doc-1"
        assert record.file_name == "doc-1.pdf"
        assert record.active is True
        assert record.description == "quarterly report"

    def test_get_missing(self, store):
        assert store.get("missing") is None
        assert store.exists("missing") is False

    def test_duplicate_id_rejected(self, store):
        store.create(_record("doc-1"))
        with pytest.raises(DuplicateDocumentError, match="doc-1"):
            store.create(_record("doc-1"))

    def test_list_active_most_recent_first(self, store):
        store.create(_record("old", minutes=0))
        store.create(_record("new", minutes=10))
        store.create(_record("middle", minutes=5))
        assert [r.id for r in store.list_active()] == ["new", "middle", "old"]

    def test_same_upload_time_lists_latest_insert_first(self, store):
        for document_id in ("charlie", "alpha", "bravo"):
            store.create(_record(document_id))
        assert [r.id for r in store.list_active()] == ["bravo", "alpha", "charlie"]
        assert [r.id for r in store.list_all()] == ["bravo", "alpha", "charlie"]

    def test_soft_delete_hides_from_active(self, store):
        store.create(_record("doc-1"))
        store.create(_record("doc-2", minutes=1))

        deleted = store.soft_delete("doc-1")

        assert deleted.active is False
        assert [r.id for r in store.list_active()] == ["doc-2"]
        assert {r.id for r in store.list_all()} == {"doc-1", "doc-2"}
        assert store.exists("doc-1") is True

    def test_soft_delete_is_idempotent(self, store):
        store.create(_record("doc-1"))
        store.soft_delete("doc-1")
        again = store.soft_delete("doc-1")
        assert again.active is False

    def test_soft_delete_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.soft_delete("missing")

    def test_statistics_count_active_only(self, store):
        store.create(_record("a", chunk_count=3))
        store.create(_record("b", chunk_count=4, minutes=1))
        store.create(_record("c", chunk_count=5, minutes=2))
        store.soft_delete("c")

        assert store.count_active() == 2
        assert store.sum_active_chunks() == 7
        assert store.active_ids() == {"a", "b"}


class TestInMemoryDocumentStore(StoreContract):
    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore()

    def test_returned_records_are_copies(self, store):
        store.create(_record("doc-1"))
        record = store.get("doc-1")
        record.active = False
        assert store.get("doc-1").active is True


class TestPgDocumentStore(StoreContract):
    """Integration tests; skipped when PostgreSQL is not reachable."""

    @pytest.fixture
    def store(self, database):
        database.truncate_tables("document_metadata")
        yield PgDocumentStore(database)
        database.truncate_tables("document_metadata")
