"""Tests for conversation memory."""

import uuid

import pytest

from rag_llm_server.chat.memory import (
    ChatMessage,
    InMemoryChatMemoryStore,
    MessageWindowChatMemory,
    PostgresChatMemoryStore,
)


def _user(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


def _assistant(text: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=text)


class TestMessageWindowChatMemory:
    @pytest.fixture
    def store(self):
        return InMemoryChatMemoryStore()

    def test_starts_empty(self, store):
        assert MessageWindowChatMemory("m1", store).messages() == []

    def test_add_and_read_back(self, store):
        memory = MessageWindowChatMemory("m1", store)
        memory.add(_user("hi"), _assistant("hello"))
        assert [m.content for m in memory.messages()] == ["hi", "hello"]

    def test_oldest_messages_evicted(self, store):
        memory = MessageWindowChatMemory("m1", store, max_messages=3)
        memory.add(_user("1"), _assistant("2"))
        memory.add(_user("3"), _assistant("4"))

        assert [m.content for m in memory.messages()] == ["2", "3", "4"]

    def test_window_never_exceeded(self, store):
        memory = MessageWindowChatMemory("m1", store, max_messages=20)
        for i in range(15):
            memory.add(_user(f"q{i}"), _assistant(f"a{i}"))
        messages = memory.messages()
        assert len(messages) == 20
        assert messages[-1].content == "a14"

    def test_memories_are_isolated(self, store):
        MessageWindowChatMemory("m1", store).add(_user("for m1"))
        assert MessageWindowChatMemory("m2", store).messages() == []

    def test_clear(self, store):
        memory = MessageWindowChatMemory("m1", store)
        memory.add(_user("hi"))
        memory.clear()
        assert memory.messages() == []

    def test_clear_unknown_is_ignored(self, store):
        MessageWindowChatMemory("never-used", store).clear()

    def test_max_messages_must_be_positive(self, store):
        with pytest.raises(ValueError):
            MessageWindowChatMemory("m1", store, max_messages=0)


class TestChatMessage:
    def test_to_api(self):
        assert _user("hi").to_api() == {"role": "user", "content": "hi"}

    def test_rejects_unknown_role(self):
        with pytest.raises(ValueError):
            ChatMessage(role="system", content="nope")


class TestPostgresChatMemoryStore:
    """Integration tests; skipped when PostgreSQL is not reachable."""

    @pytest.fixture
    def store(self, database):
        return PostgresChatMemoryStore(database, ttl_seconds=60)

    def test_round_trip_and_delete(self, store):
        memory_id = f"test-{uuid.uuid4()}"
        store.update_messages(memory_id, [_user("hi"), _assistant("hello")])

        assert store.get_messages(memory_id) == [_user("hi"), _assistant("hello")]

        store.delete_messages(memory_id)
        assert store.get_messages(memory_id) == []

    def test_expired_rows_read_as_empty(self, database):
        store = PostgresChatMemoryStore(database, ttl_seconds=0)
        memory_id = f"test-{uuid.uuid4()}"
        store.update_messages(memory_id, [_user("hi")])
        assert store.get_messages(memory_id) == []
