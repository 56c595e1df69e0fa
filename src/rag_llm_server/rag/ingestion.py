"""Document ingestion pipeline: parse, chunk, embed, store, then record metadata."""

import time
from datetime import datetime, timezone

from pydantic import BaseModel

from ..errors import DuplicateDocumentError, RAGError, ValidationError
from ..logger import logger
from .chunking import ChunkingPolicy, build_chunks
from .database import DocumentMetadataStore
from .embeddings import Embedder
from .models import (
    MAX_FILE_NAME_LENGTH,
    MAX_FILE_TYPE_LENGTH,
    DocumentRecord,
    file_type_from_name,
)
from .parser import parse_document
from .vector_store import VectorStore

# Leaves room for the timestamp suffix within the 255 character id limit
_MAX_ID_PREFIX = 230


class IngestResult(BaseModel):
    """Result of a document ingestion."""

    document: DocumentRecord
    chunks_count: int


def generate_document_id(file_name: str, now: datetime | None = None) -> str:
    """Derive a document id from the file name plus a UTC timestamp suffix."""
    now = now or datetime.now(timezone.utc)
    return f"{file_name[:_MAX_ID_PREFIX]}_{now.strftime('%Y%m%d%H%M%S%f')}"


class RAGIngestionPipeline:
    """Coordinates parser, chunker, embedder, vector store and metadata store.

    Vectors are written first and the metadata record last. The two stores
    are not transactional together: if a chunk fails partway, vectors that
    were already inserted stay in the vector store and the failure is logged
    with the number of vectors left behind.
    """

    def __init__(
        self,
        metadata_store: DocumentMetadataStore,
        vector_store: VectorStore,
        embedder: Embedder,
        policy: ChunkingPolicy | None = None,
        chunking_strategy: str = "fixed",
        ocr: bool = False,
    ):
        """Initialize the ingestion pipeline.

        Args:
            metadata_store: Store for DocumentRecords.
            vector_store: Store for chunk embeddings.
            embedder: Embedding model adapter.
            policy: Chunk size and overlap; defaults to 300/30.
            chunking_strategy: "fixed" or "paragraph".
            ocr: Run OCR on pages without a usable text layer.
        """
        self.metadata_store = metadata_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.policy = policy or ChunkingPolicy()
        self.chunking_strategy = chunking_strategy
        self.ocr = ocr

    def _resolve_id(self, file_name: str, requested_id: str | None) -> str:
        document_id = requested_id.strip() if requested_id and requested_id.strip() else None
        if document_id is None:
            document_id = generate_document_id(file_name)
        elif len(document_id) > 255:
            raise ValidationError("Document ID must be at most 255 characters")

        existing = self.metadata_store.get(document_id)
        if existing is not None:
            if existing.active:
                message = f"Document ID already exists: {document_id}"
            else:
                message = (
                    f"Document ID belongs to a deleted document: {document_id}; "
                    f"choose a new ID"
                )
            logger.warning("duplicate document id rejected", document_id=document_id)
            raise DuplicateDocumentError(message, document_id=document_id)
        return document_id

    def ingest(
        self,
        file_bytes: bytes,
        file_name: str,
        file_size_bytes: int | None = None,
        requested_id: str | None = None,
        description: str | None = None,
    ) -> IngestResult:
        """Ingest a single uploaded document.

        Args:
            file_bytes: Raw file content; must be non-empty.
            file_name: Original file name.
            file_size_bytes: Reported size; defaults to ``len(file_bytes)``.
            requested_id: Caller-chosen document id. Blank means auto-generate.
            description: Optional free-text description.

        Returns:
            IngestResult with the created DocumentRecord and chunk count.

        Raises:
            ValidationError: Empty file, missing or over-long file name, or
                negative size.
            DuplicateDocumentError: The id is already used by any record.
            ParseError: The parser could not read the file.
            EmbeddingError: An embedding call failed.
            VectorStoreError: A vector insert failed.
        """
        if not file_bytes:
            raise ValidationError("File is empty", document_id=requested_id)
        if not file_name or not file_name.strip():
            raise ValidationError("File name is required", document_id=requested_id)
        if len(file_name) > MAX_FILE_NAME_LENGTH:
            raise ValidationError(
                f"File name must be at most {MAX_FILE_NAME_LENGTH} characters",
                document_id=requested_id,
            )
        if len(file_type_from_name(file_name) or "") > MAX_FILE_TYPE_LENGTH:
            raise ValidationError(
                f"File extension must be at most {MAX_FILE_TYPE_LENGTH} characters",
                document_id=requested_id,
            )
        if file_size_bytes is None:
            file_size_bytes = len(file_bytes)
        if file_size_bytes < 0:
            raise ValidationError("File size must be non-negative", document_id=requested_id)

        start = time.perf_counter()
        document_id = self._resolve_id(file_name, requested_id)
        uploaded_at = datetime.now(timezone.utc)

        logger.info(
            "ingesting document",
            document_id=document_id,
            file_name=file_name,
            file_size_bytes=file_size_bytes,
        )

        try:
            parsed = parse_document(file_bytes, file_name, ocr=self.ocr)
        except RAGError as e:
            e.document_id = e.document_id or document_id
            raise

        chunks = build_chunks(
            parsed.text,
            document_id=document_id,
            file_name=file_name,
            uploaded_at=uploaded_at,
            policy=self.policy,
            strategy=self.chunking_strategy,
        )
        logger.info("document split", document_id=document_id, chunks_count=len(chunks))

        vectors_inserted = 0
        try:
            for chunk in chunks:
                embedding = self.embedder.embed(chunk.text)
                self.vector_store.add(embedding, chunk)
                vectors_inserted += 1
        except Exception as e:
            if vectors_inserted:
                logger.warning(
                    "partial ingestion: vectors left without metadata",
                    document_id=document_id,
                    vectors_inserted=vectors_inserted,
                    chunks_total=len(chunks),
                )
            logger.error(
                "document ingestion failed",
                document_id=document_id,
                failed_chunk_index=vectors_inserted,
                error=str(e),
            )
            if isinstance(e, RAGError):
                e.document_id = e.document_id or document_id
            raise

        now = datetime.now(timezone.utc)
        record = DocumentRecord(
            id=document_id,
            file_name=file_name,
            chunk_count=len(chunks),
            file_size_bytes=file_size_bytes,
            file_type=file_type_from_name(file_name),
            description=description,
            active=True,
            uploaded_at=uploaded_at,
            updated_at=now,
        )
        try:
            record = self.metadata_store.create(record)
        except DuplicateDocumentError:
            # Another ingestion claimed the id between the pre-check and now
            logger.warning(
                "partial ingestion: lost race for document id",
                document_id=document_id,
                vectors_inserted=vectors_inserted,
            )
            raise
        except RAGError:
            if vectors_inserted:
                logger.warning(
                    "partial ingestion: vectors left without metadata",
                    document_id=document_id,
                    vectors_inserted=vectors_inserted,
                )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "document ingested",
            document_id=document_id,
            file_name=file_name,
            chunks_count=len(chunks),
            duration_ms=round(duration_ms, 2),
        )
        return IngestResult(document=record, chunks_count=len(chunks))

    def soft_delete(self, document_id: str) -> DocumentRecord:
        """Deactivate a document. Its vectors stay in the vector store."""
        return self.metadata_store.soft_delete(document_id)

    def list_documents(self) -> list[DocumentRecord]:
        """Active documents, most recently uploaded first."""
        return self.metadata_store.list_active()
