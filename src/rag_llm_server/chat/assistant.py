"""Templated assistant tasks and conversational personas on top of ClaudeClient."""

import time
from typing import Iterator

from ..errors import ValidationError
from ..llm import ClaudeClient
from ..logger import logger
from ..prompts import PromptRegistry, RenderedPrompt, default_registry
from .memory import ChatMemoryStore, ChatMessage, MessageWindowChatMemory
from .streaming import StreamEvent, token_stream

PERSONAS = {
    "chat": "persona_chat",
    "personal_assistant": "persona_personal_assistant",
    "tech_support": "persona_tech_support",
    "language_tutor": "persona_language_tutor",
    "shopping_assistant": "persona_shopping_assistant",
    "storyteller": "persona_storyteller",
    "multilingual": "persona_multilingual",
}


def _require(**values: str) -> None:
    for name, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} must not be empty")


class Assistant:
    """Stateless single-turn tasks, one prompt template each."""

    def __init__(self, client: ClaudeClient, registry: PromptRegistry | None = None):
        self.client = client
        self.registry = registry or default_registry()

    def _render(self, template_name: str, **params) -> RenderedPrompt:
        return self.registry.get(template_name).render(params)

    def run(self, template_name: str, **params) -> str:
        """Render a template and return the model's full reply."""
        prompt = self._render(template_name, **params)
        return self.client.complete(prompt.system, [{"role": "user", "content": prompt.user}])

    def stream(self, template_name: str, **params) -> Iterator[StreamEvent]:
        """Render a template and stream the reply as events.

        Rendering errors raise immediately; provider errors arrive as the
        terminal ``error`` event.
        """
        prompt = self._render(template_name, **params)
        logger.info("streaming task started", template=template_name)
        return token_stream(
            self.client.stream(prompt.system, [{"role": "user", "content": prompt.user}])
        )

    def chat(self, message: str) -> str:
        _require(message=message)
        return self.run("chat", message=message)

    def chat_with_system(self, message: str) -> str:
        _require(message=message)
        return self.run("chat_with_system", message=message)

    def explain(self, role: str, topic: str) -> str:
        _require(role=role, topic=topic)
        return self.run("explain", role=role, topic=topic)

    def review_code(self, language: str, code: str) -> str:
        _require(language=language, code=code)
        return self.run("code_review", language=language, code=code)

    def translate(self, source_lang: str, target_lang: str, text: str) -> str:
        _require(source_lang=source_lang, target_lang=target_lang, text=text)
        return self.run("translate", source_lang=source_lang, target_lang=target_lang, text=text)

    def summarize(self, text: str, max_words: int = 100) -> str:
        _require(text=text)
        if isinstance(max_words, bool) or not isinstance(max_words, int) or max_words < 1:
            raise ValidationError("maxWords must be a positive integer")
        return self.run("summarize", text=text, max_words=max_words)

    def generate_sql(self, table_name: str, request: str) -> str:
        _require(table_name=table_name, request=request)
        return self.run("sql", table_name=table_name, request=request)

    def analyze_sentiment(self, text: str) -> str:
        _require(text=text)
        return self.run("sentiment", text=text)

    def write_blog_post(self, topic: str) -> str:
        _require(topic=topic)
        return self.run("blog", topic=topic)


class ConversationalAssistant:
    """Multi-turn chat that remembers the last ``max_messages`` messages per memory id."""

    def __init__(
        self,
        client: ClaudeClient,
        store: ChatMemoryStore,
        registry: PromptRegistry | None = None,
        max_messages: int = 20,
    ):
        self.client = client
        self.store = store
        self.registry = registry or default_registry()
        self.max_messages = max_messages

    def memory(self, memory_id: str) -> MessageWindowChatMemory:
        return MessageWindowChatMemory(memory_id, self.store, self.max_messages)

    def chat(self, memory_id: str, message: str, persona: str = "chat", **params) -> str:
        """Send a message within a conversation and return the reply.

        Args:
            memory_id: Conversation key.
            message: The user's message.
            persona: One of PERSONAS; selects the system prompt.
            **params: Extra persona parameters, e.g. ``language`` for the tutor.

        Returns:
            The assistant's reply. Both turns are stored only if generation succeeds.

        Raises:
            ValidationError: Blank memory id or message, unknown persona or
                missing persona parameter.
            GenerationError: If the provider call fails.
        """
        _require(memory_id=memory_id, message=message)
        if persona not in PERSONAS:
            raise ValidationError(
                f"Unknown persona '{persona}'; expected one of {', '.join(sorted(PERSONAS))}"
            )

        prompt = self.registry.get(PERSONAS[persona]).render({"message": message, **params})
        memory = self.memory(memory_id)
        history = memory.messages()

        # The provider requires the conversation to start with a user turn
        while history and history[0].role != "user":
            history.pop(0)

        messages = [m.to_api() for m in history]
        messages.append({"role": "user", "content": prompt.user})

        start = time.perf_counter()
        reply = self.client.complete(prompt.system, messages)
        duration_ms = (time.perf_counter() - start) * 1000

        memory.add(
            ChatMessage(role="user", content=message),
            ChatMessage(role="assistant", content=reply),
        )
        logger.info(
            "conversation turn completed",
            memory_id=memory_id,
            persona=persona,
            history_messages=len(history),
            duration_ms=round(duration_ms, 2),
        )
        return reply

    def forget(self, memory_id: str) -> None:
        _require(memory_id=memory_id)
        self.memory(memory_id).clear()
