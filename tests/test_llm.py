"""Tests for the Claude client with mocked Anthropic API."""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from anthropic import APIError

from rag_llm_server.errors import ConfigurationError, GenerationError
from rag_llm_server.llm import ClaudeClient


def _api_error(message: str = "overloaded") -> APIError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return APIError(message, request, body=None)


@pytest.fixture
def mock_anthropic():
    with patch("rag_llm_server.llm.Anthropic") as mock_cls:
        yield mock_cls.return_value


class TestClaudeClientInit:
    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError, match="Anthropic API key required"):
            ClaudeClient(api_key="")

    def test_init_with_api_key(self):
        with patch("rag_llm_server.llm.Anthropic") as mock_cls:
            client = ClaudeClient(api_key="test-key", model="claude-test", temperature=0.2)
            mock_cls.assert_called_once_with(api_key="test-key")
            assert client.model == "claude-test"
            assert client.temperature == 0.2


class TestComplete:
    def test_returns_text(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = MagicMock(content=[MagicMock(text="Hello!")])
        client = ClaudeClient(api_key="k", model="claude-test", max_tokens=100)

        result = client.complete("Be brief.", [{"role": "user", "content": "Hi"}])

        assert result == "Hello!"
        mock_anthropic.messages.create.assert_called_once_with(
            model="claude-test",
            max_tokens=100,
            temperature=0.7,
            messages=[{"role": "user", "content": "Hi"}],
            system="Be brief.",
        )

    def test_system_omitted_when_none(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = MagicMock(content=[MagicMock(text="ok")])
        client = ClaudeClient(api_key="k")

        client.complete(None, [{"role": "user", "content": "Hi"}])

        assert "system" not in mock_anthropic.messages.create.call_args.kwargs

    def test_api_error_becomes_generation_error(self, mock_anthropic):
        mock_anthropic.messages.create.side_effect = _api_error("overloaded")
        client = ClaudeClient(api_key="k")

        with pytest.raises(GenerationError, match="overloaded"):
            client.complete(None, [{"role": "user", "content": "Hi"}])

    def test_empty_content_raises(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = MagicMock(content=[])
        client = ClaudeClient(api_key="k")

        with pytest.raises(GenerationError, match="Empty response"):
            client.complete(None, [{"role": "user", "content": "Hi"}])


class TestStream:
    def _stream_context(self, mock_anthropic, fragments):
        stream = MagicMock()
        stream.text_stream = iter(fragments)
        mock_anthropic.messages.stream.return_value.__enter__.return_value = stream
        return stream

    def test_yields_fragments(self, mock_anthropic):
        self._stream_context(mock_anthropic, ["Hel", "", "lo"])
        client = ClaudeClient(api_key="k")

        assert list(client.stream(None, [{"role": "user", "content": "Hi"}])) == ["Hel", "lo"]

    def test_api_error_during_stream(self, mock_anthropic):
        def failing():
            yield "partial"
            raise _api_error("connection reset")

        self._stream_context(mock_anthropic, failing())
        client = ClaudeClient(api_key="k")
        stream = client.stream(None, [{"role": "user", "content": "Hi"}])

        assert next(stream) == "partial"
        with pytest.raises(GenerationError, match="connection reset"):
            next(stream)

    def test_closing_exits_provider_stream(self, mock_anthropic):
        self._stream_context(mock_anthropic, ["a", "b", "c"])
        client = ClaudeClient(api_key="k")
        stream = client.stream(None, [{"role": "user", "content": "Hi"}])

        next(stream)
        stream.close()

        mock_anthropic.messages.stream.return_value.__exit__.assert_called_once()
