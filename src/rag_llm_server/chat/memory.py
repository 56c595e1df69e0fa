"""Conversation memory: a bounded window of turns per memory id.

The window policy (drop the oldest messages beyond ``max_messages``) lives in
MessageWindowChatMemory and is independent of where messages are stored.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Literal

import psycopg2
from psycopg2.extras import Json
from pydantic import BaseModel

from ..db import PostgresDatabase
from ..errors import ChatMemoryError
from ..logger import logger

DEFAULT_MAX_MESSAGES = 20
DEFAULT_TTL_SECONDS = 3600


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str

    def to_api(self) -> dict:
        return {"role": self.role, "content": self.content}


class ChatMemoryStore(ABC):
    """Storage backend for conversation messages keyed by memory id."""

    @abstractmethod
    def get_messages(self, memory_id: str) -> list[ChatMessage]:
        """Stored messages, oldest first; empty for an unknown id."""

    @abstractmethod
    def update_messages(self, memory_id: str, messages: list[ChatMessage]) -> None:
        """Replace the stored messages for a memory id."""

    @abstractmethod
    def delete_messages(self, memory_id: str) -> None:
        """Forget a memory id; unknown ids are ignored."""


class InMemoryChatMemoryStore(ChatMemoryStore):
    def __init__(self):
        self._messages: dict[str, list[ChatMessage]] = {}
        self._lock = threading.Lock()

    def get_messages(self, memory_id: str) -> list[ChatMessage]:
        with self._lock:
            return list(self._messages.get(memory_id, []))

    def update_messages(self, memory_id: str, messages: list[ChatMessage]) -> None:
        with self._lock:
            self._messages[memory_id] = list(messages)

    def delete_messages(self, memory_id: str) -> None:
        with self._lock:
            self._messages.pop(memory_id, None)


class PostgresChatMemoryStore(ChatMemoryStore):
    """Messages stored as JSONB in ``chat_memory``; rows expire after ``ttl_seconds``.

    Every update pushes the expiry forward. Expired rows read as empty.
    """

    def __init__(self, database: PostgresDatabase, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.database = database
        self.ttl_seconds = ttl_seconds

    def get_messages(self, memory_id: str) -> list[ChatMessage]:
        start = time.perf_counter()
        try:
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT messages FROM chat_memory
                        WHERE memory_id = %s AND expires_at > NOW()
                        """,
                        (memory_id,),
                    )
                    row = cur.fetchone()
                conn.rollback()
        except psycopg2.Error as e:
            logger.error("chat memory read failed", memory_id=memory_id, error=str(e))
            raise ChatMemoryError(f"Failed to load conversation: {e}") from e

        messages = [ChatMessage(**m) for m in row[0]] if row else []
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "chat memory loaded",
            memory_id=memory_id,
            messages_count=len(messages),
            duration_ms=round(duration_ms, 2),
        )
        return messages

    def update_messages(self, memory_id: str, messages: list[ChatMessage]) -> None:
        start = time.perf_counter()
        payload = Json([m.model_dump() for m in messages])
        try:
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO chat_memory (memory_id, messages, updated_at, expires_at)
                        VALUES (%s, %s, NOW(), NOW() + make_interval(secs => %s))
                        ON CONFLICT (memory_id) DO UPDATE
                        SET messages = EXCLUDED.messages,
                            updated_at = EXCLUDED.updated_at,
                            expires_at = EXCLUDED.expires_at
                        """,
                        (memory_id, payload, self.ttl_seconds),
                    )
                conn.commit()
        except psycopg2.Error as e:
            logger.error("chat memory write failed", memory_id=memory_id, error=str(e))
            raise ChatMemoryError(f"Failed to save conversation: {e}") from e

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "chat memory saved",
            memory_id=memory_id,
            messages_count=len(messages),
            duration_ms=round(duration_ms, 2),
        )

    def delete_messages(self, memory_id: str) -> None:
        try:
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM chat_memory WHERE memory_id = %s", (memory_id,))
                conn.commit()
        except psycopg2.Error as e:
            logger.error("chat memory delete failed", memory_id=memory_id, error=str(e))
            raise ChatMemoryError(f"Failed to delete conversation: {e}") from e
        logger.info("chat memory deleted", memory_id=memory_id)


class MessageWindowChatMemory:
    """Keeps the most recent ``max_messages`` messages of one conversation."""

    def __init__(
        self,
        memory_id: str,
        store: ChatMemoryStore,
        max_messages: int = DEFAULT_MAX_MESSAGES,
    ):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.memory_id = memory_id
        self.store = store
        self.max_messages = max_messages

    def messages(self) -> list[ChatMessage]:
        return self.store.get_messages(self.memory_id)

    def add(self, *messages: ChatMessage) -> list[ChatMessage]:
        """Append messages, evict the oldest beyond the window, and persist."""
        current = self.messages()
        current.extend(messages)
        evicted = max(0, len(current) - self.max_messages)
        if evicted:
            current = current[evicted:]
            logger.debug("chat memory window trimmed", memory_id=self.memory_id, evicted=evicted)
        self.store.update_messages(self.memory_id, current)
        return current

    def clear(self) -> None:
        self.store.delete_messages(self.memory_id)
