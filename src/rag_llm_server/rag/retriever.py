"""Query-time retrieval: embed the question, search, assemble context."""

import time

from pydantic import BaseModel

from ..errors import RAGError, ValidationError
from ..logger import logger
from .database import DocumentMetadataStore
from .embeddings import Embedder
from .models import RetrievedChunk, SearchMatch
from .vector_store import VectorStore

NO_RELEVANT_CONTENT = "No relevant documents found."

DEFAULT_MAX_RESULTS = 3
DEFAULT_MIN_SCORE = 0.7


class RetrievalResult(BaseModel):
    """Matches for one question plus the context blob built from them."""

    question: str
    document_id: str | None = None
    max_results: int
    min_score: float
    chunks: list[RetrievedChunk]
    context: str

    @property
    def found(self) -> bool:
        return bool(self.chunks)


def validate_query(question: str, max_results: int, min_score: float) -> None:
    """Reject out-of-range retrieval parameters; nothing is clamped.

    Raises:
        ValidationError: Blank question, non-positive max_results or min_score
            outside [0.0, 1.0].
    """
    if not isinstance(question, str) or not question.strip():
        raise ValidationError("Question must not be empty")
    if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results < 1:
        raise ValidationError(
            f"maxResults must be a positive integer, got {max_results!r}", question=question
        )
    if isinstance(min_score, bool) or not isinstance(min_score, (int, float)):
        raise ValidationError(f"minScore must be a number, got {min_score!r}", question=question)
    if not 0.0 <= min_score <= 1.0:
        raise ValidationError(
            f"minScore must be between 0.0 and 1.0, got {min_score}", question=question
        )


def build_context(chunks: list[RetrievedChunk]) -> str:
    """Join retrieved chunks into one context blob, each tagged with file and score."""
    if not chunks:
        return NO_RELEVANT_CONTENT
    return "\n---\n".join(
        f"[File: {chunk.source_file_name}, Score: {chunk.score:.2f}]\n{chunk.text}\n"
        for chunk in chunks
    )


def _to_retrieved(match: SearchMatch) -> RetrievedChunk:
    return RetrievedChunk(
        text=match.text,
        score=match.score,
        source_file_name=match.file_name or "unknown",
        document_id=match.document_id,
        chunk_index=match.chunk_index,
    )


class RAGRetriever:
    """Similarity retrieval over the vector store.

    By default soft-deleted documents stay searchable, because their vectors
    remain in the vector store. With ``exclude_inactive=True`` every match
    is cross-checked against the metadata store's active ids.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        metadata_store: DocumentMetadataStore | None = None,
        exclude_inactive: bool = False,
    ):
        if exclude_inactive and metadata_store is None:
            raise ValueError("exclude_inactive requires a metadata store")
        self.embedder = embedder
        self.vector_store = vector_store
        self.metadata_store = metadata_store
        self.exclude_inactive = exclude_inactive

    def retrieve(
        self,
        question: str,
        max_results: int = DEFAULT_MAX_RESULTS,
        min_score: float = DEFAULT_MIN_SCORE,
        document_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Retrieve chunks relevant to a question, best first.

        Args:
            question: The question; must not be blank.
            max_results: Maximum number of chunks to return (positive).
            min_score: Minimum relevance score in [0.0, 1.0].
            document_id: Restrict the search to one document.

        Returns:
            Chunks with score >= min_score ordered by descending score.
            Empty when nothing qualifies.

        Raises:
            ValidationError: If the parameters are out of range.
            EmbeddingError: If embedding the question fails.
            VectorStoreError: If the search fails.
        """
        validate_query(question, max_results, min_score)
        document_id = document_id or None
        start = time.perf_counter()

        try:
            query_embedding = self.embedder.embed(question)
            if self.exclude_inactive:
                matches = self._search_active(query_embedding, max_results, min_score, document_id)
            else:
                matches = self.vector_store.search(
                    query_embedding, max_results, min_score, document_id=document_id
                )
        except RAGError as e:
            e.question = e.question or question
            e.document_id = e.document_id or document_id
            raise

        chunks = [_to_retrieved(match) for match in matches]

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "retrieval completed",
            query_length=len(question),
            max_results=max_results,
            min_score=min_score,
            document_id=document_id,
            results_count=len(chunks),
            duration_ms=round(duration_ms, 2),
        )
        return chunks

    def _search_active(
        self,
        query_embedding: list[float],
        max_results: int,
        min_score: float,
        document_id: str | None,
    ) -> list[SearchMatch]:
        active = self.metadata_store.active_ids()
        if document_id is not None and document_id not in active:
            logger.info("document inactive or unknown, skipping search", document_id=document_id)
            return []

        # Widen the search until enough active matches are found or the store is exhausted
        limit = max_results
        while True:
            matches = self.vector_store.search(
                query_embedding, limit, min_score, document_id=document_id
            )
            kept = [m for m in matches if m.document_id in active]
            if len(kept) >= max_results or len(matches) < limit:
                return kept[:max_results]
            limit *= 2

    def search_relevant_content(
        self,
        question: str,
        max_results: int = DEFAULT_MAX_RESULTS,
        min_score: float = DEFAULT_MIN_SCORE,
        document_id: str | None = None,
    ) -> RetrievalResult:
        """Retrieve chunks and build the context blob without generating an answer."""
        chunks = self.retrieve(question, max_results, min_score, document_id)
        return RetrievalResult(
            question=question,
            document_id=document_id or None,
            max_results=max_results,
            min_score=min_score,
            chunks=chunks,
            context=build_context(chunks),
        )
