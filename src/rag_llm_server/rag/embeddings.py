"""Embedding generation via the OpenAI embeddings API."""

import time
from abc import ABC, abstractmethod

from openai import OpenAI, OpenAIError

from ..config import DEFAULT_EMBEDDING_MODEL
from ..errors import ConfigurationError, EmbeddingError
from ..logger import logger

# Native output size of the OpenAI embedding models
MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def resolve_dimension(model: str, dimensions: int | None = None) -> int:
    """Output size of an embedding model, honouring an explicit override.

    Raises:
        ConfigurationError: If the model is unknown and no override is given.
    """
    if dimensions is not None:
        return dimensions
    if model not in MODEL_DIMENSIONS:
        raise ConfigurationError(
            f"Unknown native dimension for embedding model '{model}'; "
            f"set EMBEDDING_DIMENSION"
        )
    return MODEL_DIMENSIONS[model]


def estimate_tokens(text: str) -> int:
    """Estimate token count for a text string.

    Uses the approximation of 4 characters per token.
    """
    return len(text) // 4


class Embedder(ABC):
    """Turns text into a fixed-dimension vector."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this embedder returns."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the provider call fails.
        """


class EmbeddingClient(Embedder):
    """Embedder backed by OpenAI's embeddings endpoint.

    Failures are not retried; they surface as EmbeddingError and the caller
    decides whether to resubmit.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimensions: int | None = None,
    ):
        """Initialize the embedding client.

        Args:
            api_key: OpenAI API key.
            model: Embedding model name.
            dimensions: Requested output size; defaults to the model's native size.

        Raises:
            ConfigurationError: If no API key is given or the dimension is unknown.
        """
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key required: provide api_key or set OPENAI_API_KEY"
            )
        self._model = model
        self._requested_dimensions = dimensions
        self._dimension = resolve_dimension(model, dimensions)
        self._client = OpenAI(api_key=api_key)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model(self) -> str:
        return self._model

    def embed(self, text: str) -> list[float]:
        """Generate the embedding for one text.

        Args:
            text: The text to embed.

        Returns:
            Embedding vector of ``dimension`` floats.

        Raises:
            EmbeddingError: If the API call fails or returns the wrong shape.
        """
        kwargs = {"model": self._model, "input": [text]}
        if self._requested_dimensions is not None:
            kwargs["dimensions"] = self._requested_dimensions

        start = time.perf_counter()
        try:
            response = self._client.embeddings.create(**kwargs)
        except OpenAIError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "embedding generation failed",
                model=self._model,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            raise EmbeddingError(f"Embedding generation failed: {e}") from e
        duration_ms = (time.perf_counter() - start) * 1000

        if not response.data:
            raise EmbeddingError("Embedding provider returned no vectors")
        embedding = list(response.data[0].embedding)
        if len(embedding) != self._dimension:
            raise EmbeddingError(
                f"Embedding provider returned {len(embedding)} dimensions, "
                f"expected {self._dimension}"
            )

        logger.debug(
            "embedding generated",
            model=self._model,
            estimated_tokens=estimate_tokens(text),
            duration_ms=round(duration_ms, 2),
        )
        return embedding
