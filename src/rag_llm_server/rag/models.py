from datetime import datetime
from pathlib import PurePath

from pydantic import BaseModel, Field


# Column widths of document_metadata
MAX_FILE_NAME_LENGTH = 500
MAX_FILE_TYPE_LENGTH = 50


def file_type_from_name(file_name: str | None) -> str | None:
    """Lower-cased extension without the dot, or None when there is none."""
    if not file_name:
        return None
    suffix = PurePath(file_name).suffix
    return suffix[1:].lower() if len(suffix) > 1 else None


class DocumentRecord(BaseModel):
    """Persistent metadata for one ingested file."""

    id: str = Field(..., min_length=1, max_length=255)
    file_name: str = Field(..., min_length=1, max_length=MAX_FILE_NAME_LENGTH)
    chunk_count: int = Field(..., ge=0)
    file_size_bytes: int = Field(..., ge=0)
    file_type: str | None = Field(default=None, max_length=MAX_FILE_TYPE_LENGTH)
    description: str | None = None
    active: bool = True
    uploaded_at: datetime
    updated_at: datetime


class Chunk(BaseModel):
    """A slice of a document's text, the unit of embedding and retrieval."""

    text: str
    source_document_id: str
    source_file_name: str
    chunk_index: int = Field(..., ge=0)
    uploaded_at: datetime
    created_at: datetime

    def payload_metadata(self) -> dict:
        """Metadata stored alongside the chunk's vector."""
        return {
            "document_id": self.source_document_id,
            "file_name": self.source_file_name,
            "uploaded_at": self.uploaded_at.isoformat(),
            "chunk_index": self.chunk_index,
        }


class SearchMatch(BaseModel):
    """A stored chunk returned by a similarity query, with its score."""

    embedding_id: str
    text: str
    metadata: dict = Field(default_factory=dict)
    score: float

    @property
    def document_id(self) -> str | None:
        return self.metadata.get("document_id")

    @property
    def file_name(self) -> str | None:
        return self.metadata.get("file_name")

    @property
    def chunk_index(self) -> int | None:
        return self.metadata.get("chunk_index")


class RetrievedChunk(BaseModel):
    text: str
    score: float
    source_file_name: str
    document_id: str | None = None
    chunk_index: int | None = None
