from .models import Chunk, DocumentRecord, RetrievedChunk, SearchMatch
from .parser import ParsedDocument, parse_document
from .chunking import (
    ChunkingPolicy,
    build_chunks,
    fixed_size_chunking,
    semantic_chunking_by_paragraphs,
)
from .ocr import assess_needs_ocr
from .embeddings import Embedder, EmbeddingClient
from .vector_store import InMemoryVectorStore, PgVectorStore, VectorStore
from .database import DocumentMetadataStore, InMemoryDocumentStore, PgDocumentStore
from .ingestion import IngestResult, RAGIngestionPipeline, generate_document_id
from .retriever import (
    NO_RELEVANT_CONTENT,
    RAGRetriever,
    RetrievalResult,
    build_context,
)
from .generation import (
    AnswerGenerator,
    AnswerResult,
    ClaudeAnswerGenerator,
    RAGAssistant,
    SourceReference,
)
from .maintenance import find_orphaned_document_ids

__all__ = [
    "Chunk",
    "DocumentRecord",
    "RetrievedChunk",
    "SearchMatch",
    "ParsedDocument",
    "parse_document",
    "ChunkingPolicy",
    "build_chunks",
    "fixed_size_chunking",
    "semantic_chunking_by_paragraphs",
    "assess_needs_ocr",
    "Embedder",
    "EmbeddingClient",
    "InMemoryVectorStore",
    "PgVectorStore",
    "VectorStore",
    "DocumentMetadataStore",
    "InMemoryDocumentStore",
    "PgDocumentStore",
    "IngestResult",
    "RAGIngestionPipeline",
    "generate_document_id",
    "NO_RELEVANT_CONTENT",
    "RAGRetriever",
    "RetrievalResult",
    "build_context",
    "AnswerGenerator",
    "AnswerResult",
    "ClaudeAnswerGenerator",
    "RAGAssistant",
    "SourceReference",
    "find_orphaned_document_ids",
]
