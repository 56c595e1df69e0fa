"""Consistency checks between the vector store and the metadata store."""

import time

from ..logger import logger
from .database import DocumentMetadataStore
from .vector_store import VectorStore


def find_orphaned_document_ids(
    vector_store: VectorStore, metadata_store: DocumentMetadataStore
) -> set[str]:
    """Document ids that have vectors but no active metadata record.

    These come from ingestions that failed or lost an id race after writing
    vectors, and from soft-deleted documents. Read-only: nothing is removed.
    """
    start = time.perf_counter()
    vector_ids = vector_store.document_ids()
    orphaned = vector_ids - metadata_store.active_ids()

    duration_ms = (time.perf_counter() - start) * 1000
    log = logger.warning if orphaned else logger.info
    log(
        "orphaned vector check completed",
        vector_documents=len(vector_ids),
        orphaned_count=len(orphaned),
        duration_ms=round(duration_ms, 2),
    )
    return orphaned
