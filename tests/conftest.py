"""Shared fixtures: deterministic embedder, in-memory stores, optional PostgreSQL."""

import os
from pathlib import Path

import psycopg2
import pytest

from rag_llm_server.config import DEFAULT_DATABASE_URL
from rag_llm_server.db import PostgresDatabase
from rag_llm_server.rag import InMemoryDocumentStore, InMemoryVectorStore
from rag_llm_server.rag.embeddings import Embedder

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

KEYWORDS = ("contract", "invoice", "weather", "recipe")


class KeywordEmbedder(Embedder):
    """Counts keyword occurrences; texts without keywords share one spare axis.

    Texts about the same keyword score 1.0 against each other and texts about
    different keywords score 0.5 (orthogonal), which keeps score thresholds
    easy to reason about in tests.
    """

    def __init__(self):
        self.calls: list[str] = []

    @property
    def dimension(self) -> int:
        return len(KEYWORDS) + 1

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        lowered = text.lower()
        vector = [float(lowered.count(k)) for k in KEYWORDS]
        vector.append(0.0 if any(vector) else 1.0)
        return vector


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def metadata_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore(len(KEYWORDS) + 1)


@pytest.fixture(scope="session")
def database():
    """PostgreSQL with migrations applied; skips when no database is reachable."""
    db = PostgresDatabase(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL))
    try:
        db.connect()
        db.run_migrations(MIGRATIONS_DIR)
    except psycopg2.Error as e:
        db.disconnect()
        pytest.skip(f"PostgreSQL not available: {e}")
    yield db
    db.disconnect()
