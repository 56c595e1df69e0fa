"""Text chunking for the RAG pipeline."""

import re
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator

from .models import Chunk

DEFAULT_CHUNK_SIZE = 300
DEFAULT_CHUNK_OVERLAP = 30

STRATEGIES = ("fixed", "paragraph")


class ChunkingPolicy(BaseModel):
    """Window size and overlap, both in characters."""

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    overlap: int = Field(default=DEFAULT_CHUNK_OVERLAP, ge=0)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "ChunkingPolicy":
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be less than chunk_size")
        return self


def fixed_size_chunking(
    text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP
) -> list[str]:
    """Split text into fixed-size character windows with overlap.

    Windows are taken verbatim (no stripping or word-boundary snapping), so
    consecutive chunks share exactly ``overlap`` characters and the last
    chunk may be shorter than ``chunk_size``.

    Args:
        text: The text to chunk.
        chunk_size: Maximum characters per chunk.
        overlap: Number of characters repeated at the start of the next chunk.

    Returns:
        List of text chunks; empty for empty or whitespace-only text.
    """
    if not text or chunk_size <= 0:
        return []

    if overlap < 0:
        raise ValueError("overlap must be non-negative")

    if overlap >= chunk_size:
        raise ValueError("overlap must be less than chunk_size to avoid infinite loops")

    if not text.strip():
        return []

    if len(text) <= chunk_size:
        return [text]

    step = chunk_size - overlap
    chunks = []
    start = 0
    while True:
        end = start + chunk_size
        chunks.append(text[start:end])
        if end >= len(text):
            break
        start += step

    return chunks


def semantic_chunking_by_paragraphs(
    text: str,
    max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[str]:
    """Split text by paragraphs, merging small paragraphs.

    Paragraphs longer than ``max_chunk_size`` are cut with
    fixed_size_chunking().

    Args:
        text: The text to chunk.
        max_chunk_size: Maximum characters per chunk.
        overlap: Overlap used when an oversize paragraph is cut.

    Returns:
        List of text chunks preserving paragraph boundaries.
    """
    if not text:
        return []

    paragraphs = re.split(r"\n\s*\n", text)
    paragraphs = [p.strip() for p in paragraphs if p.strip()]

    if not paragraphs:
        return []

    chunks = []
    current_chunk = []
    current_size = 0

    for para in paragraphs:
        para_size = len(para)

        if para_size > max_chunk_size:
            if current_chunk:
                chunks.append("\n\n".join(current_chunk))
                current_chunk = []
                current_size = 0
            chunks.extend(fixed_size_chunking(para, max_chunk_size, overlap=overlap))
            continue

        new_size = current_size + para_size + (2 if current_chunk else 0)
        if new_size > max_chunk_size and current_chunk:
            chunks.append("\n\n".join(current_chunk))
            current_chunk = []
            current_size = 0

        current_chunk.append(para)
        current_size += para_size + (2 if len(current_chunk) > 1 else 0)

    if current_chunk:
        chunks.append("\n\n".join(current_chunk))

    return chunks


def split_text(
    text: str, policy: ChunkingPolicy | None = None, strategy: str = "fixed"
) -> list[str]:
    """Split text with the given policy and strategy ("fixed" or "paragraph")."""
    policy = policy or ChunkingPolicy()
    if strategy == "fixed":
        return fixed_size_chunking(text, policy.chunk_size, policy.overlap)
    if strategy == "paragraph":
        return semantic_chunking_by_paragraphs(text, policy.chunk_size, policy.overlap)
    raise ValueError(f"Unknown chunking strategy: {strategy}")


def build_chunks(
    text: str,
    document_id: str,
    file_name: str,
    uploaded_at: datetime,
    policy: ChunkingPolicy | None = None,
    strategy: str = "fixed",
) -> list[Chunk]:
    """Split a document's text into Chunks tagged with their source.

    Args:
        text: Parsed document text.
        document_id: Id of the document the chunks belong to.
        file_name: Original file name of the document.
        uploaded_at: Ingestion timestamp shared by all chunks.
        policy: Chunk size and overlap; defaults to 300/30.
        strategy: "fixed" or "paragraph".

    Returns:
        Chunks in document order with chunk_index 0..n-1.
    """
    created_at = datetime.now(timezone.utc)
    return [
        Chunk(
            text=piece,
            source_document_id=document_id,
            source_file_name=file_name,
            chunk_index=index,
            uploaded_at=uploaded_at,
            created_at=created_at,
        )
        for index, piece in enumerate(split_text(text, policy, strategy))
    ]
