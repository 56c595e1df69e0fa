"""Tests for embedding generation with mocked OpenAI API."""

import pytest
from unittest.mock import Mock, patch

from openai import OpenAIError

from rag_llm_server.errors import ConfigurationError, EmbeddingError
from rag_llm_server.rag.embeddings import (
    EmbeddingClient,
    estimate_tokens,
    resolve_dimension,
)


def _response(vector):
    return Mock(data=[Mock(embedding=vector)])


class TestEstimateTokens:
    def test_empty_string(self):
        assert estimate_tokens("") == 0

    def test_four_chars_per_token(self):
        assert estimate_tokens("a" * 100) == 25


class TestResolveDimension:
    def test_known_models(self):
        assert resolve_dimension("text-embedding-3-small") == 1536
        assert resolve_dimension("text-embedding-3-large") == 3072

    def test_override_wins(self):
        assert resolve_dimension("text-embedding-3-large", 256) == 256

    def test_unknown_model_raises(self):
        with pytest.raises(ConfigurationError, match="EMBEDDING_DIMENSION"):
            resolve_dimension("my-custom-model")

    def test_unknown_model_with_override(self):
        assert resolve_dimension("my-custom-model", 384) == 384


class TestEmbeddingClientInit:
    def test_init_with_api_key(self):
        with patch("rag_llm_server.rag.embeddings.OpenAI") as mock_openai:
            client = EmbeddingClient(api_key="test-key")
            mock_openai.assert_called_once_with(api_key="test-key")
            assert client.dimension == 1536
            assert client.model == "text-embedding-3-small"

    def test_init_without_api_key_raises(self):
        with pytest.raises(ConfigurationError, match="OpenAI API key required"):
            EmbeddingClient(api_key=None)

    def test_init_with_dimensions(self):
        with patch("rag_llm_server.rag.embeddings.OpenAI"):
            client = EmbeddingClient(api_key="k", model="text-embedding-3-large", dimensions=1024)
            assert client.dimension == 1024


class TestEmbed:
    @pytest.fixture
    def mock_openai(self):
        with patch("rag_llm_server.rag.embeddings.OpenAI") as mock_openai:
            yield mock_openai.return_value

    def test_returns_vector(self, mock_openai):
        mock_openai.embeddings.create.return_value = _response([0.1] * 1536)
        client = EmbeddingClient(api_key="k")

        result = client.embed("hello")

        assert result == [0.1] * 1536
        mock_openai.embeddings.create.assert_called_once_with(
            model="text-embedding-3-small", input=["hello"]
        )

    def test_passes_requested_dimensions(self, mock_openai):
        mock_openai.embeddings.create.return_value = _response([0.5] * 8)
        client = EmbeddingClient(api_key="k", dimensions=8)

        client.embed("hello")

        kwargs = mock_openai.embeddings.create.call_args.kwargs
        assert kwargs["dimensions"] == 8

    def test_api_error_becomes_embedding_error(self, mock_openai):
        mock_openai.embeddings.create.side_effect = OpenAIError("rate limited")
        client = EmbeddingClient(api_key="k")

        with pytest.raises(EmbeddingError, match="rate limited"):
            client.embed("hello")

    def test_wrong_dimension_raises(self, mock_openai):
        mock_openai.embeddings.create.return_value = _response([0.1] * 10)
        client = EmbeddingClient(api_key="k")

        with pytest.raises(EmbeddingError, match="expected 1536"):
            client.embed("hello")

    def test_empty_response_raises(self, mock_openai):
        mock_openai.embeddings.create.return_value = Mock(data=[])
        client = EmbeddingClient(api_key="k")

        with pytest.raises(EmbeddingError, match="no vectors"):
            client.embed("hello")

    def test_not_retried(self, mock_openai):
        mock_openai.embeddings.create.side_effect = OpenAIError("boom")
        client = EmbeddingClient(api_key="k")

        with pytest.raises(EmbeddingError):
            client.embed("hello")
        assert mock_openai.embeddings.create.call_count == 1
