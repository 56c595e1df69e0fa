"""Claude client for completions and token streaming."""

import time
from typing import Iterator

from anthropic import Anthropic, APIError

from .config import DEFAULT_CHAT_MODEL
from .errors import ConfigurationError, GenerationError
from .logger import logger

DEFAULT_MAX_TOKENS = 2048


class ClaudeClient:
    """Thin wrapper over the Anthropic messages API.

    Provider failures (timeouts, rate limits, status errors) become
    GenerationError; nothing is retried.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_CHAT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        """Initialize the client.

        Args:
            api_key: Anthropic API key.
            model: Claude model to use for generation.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens per response.

        Raises:
            ConfigurationError: If no API key is given.
        """
        if not api_key:
            raise ConfigurationError(
                "Anthropic API key required: provide api_key or set ANTHROPIC_API_KEY"
            )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._anthropic = Anthropic(api_key=api_key)

    def _request(self, system: str | None, messages: list[dict]) -> dict:
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    def complete(self, system: str | None, messages: list[dict]) -> str:
        """Generate a full response.

        Args:
            system: System prompt, or None.
            messages: Conversation as ``{"role", "content"}`` dicts, user first.

        Returns:
            The response text.

        Raises:
            GenerationError: If the API call fails or returns no text.
        """
        start = time.perf_counter()
        try:
            response = self._anthropic.messages.create(**self._request(system, messages))
        except APIError as e:
            logger.error("generation failed", model=self.model, error=str(e))
            raise GenerationError(f"Generation failed: {e}") from e
        duration_ms = (time.perf_counter() - start) * 1000

        if not response.content:
            raise GenerationError("Empty response from Claude API")
        text = response.content[0].text
        if not text:
            raise GenerationError("Empty response from Claude API")

        logger.info(
            "generation completed",
            model=self.model,
            messages_count=len(messages),
            answer_length=len(text),
            duration_ms=round(duration_ms, 2),
        )
        return text

    def stream(self, system: str | None, messages: list[dict]) -> Iterator[str]:
        """Yield response text fragments as the model produces them.

        Closing the returned generator closes the provider stream.

        Raises:
            GenerationError: If the API call fails before or during streaming.
        """
        start = time.perf_counter()
        fragments = 0
        try:
            with self._anthropic.messages.stream(**self._request(system, messages)) as stream:
                for text in stream.text_stream:
                    if text:
                        fragments += 1
                        yield text
        except APIError as e:
            logger.error(
                "streaming generation failed",
                model=self.model,
                fragments_sent=fragments,
                error=str(e),
            )
            raise GenerationError(f"Streaming generation failed: {e}") from e

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "streaming generation completed",
            model=self.model,
            fragments=fragments,
            duration_ms=round(duration_ms, 2),
        )
