from .memory import (
    ChatMemoryStore,
    ChatMessage,
    InMemoryChatMemoryStore,
    MessageWindowChatMemory,
    PostgresChatMemoryStore,
)
from .streaming import StreamEvent, sse_stream, to_sse, token_stream
from .assistant import PERSONAS, Assistant, ConversationalAssistant

__all__ = [
    "ChatMemoryStore",
    "ChatMessage",
    "InMemoryChatMemoryStore",
    "MessageWindowChatMemory",
    "PostgresChatMemoryStore",
    "StreamEvent",
    "sse_stream",
    "to_sse",
    "token_stream",
    "PERSONAS",
    "Assistant",
    "ConversationalAssistant",
]
