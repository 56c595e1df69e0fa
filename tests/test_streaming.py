"""Tests for token streams and SSE framing."""

import json

from rag_llm_server.chat.streaming import StreamEvent, sse_stream, to_sse, token_stream
from rag_llm_server.errors import GenerationError


class TestTokenStream:
    def test_tokens_then_complete(self):
        events = list(token_stream(["Hello", ", ", "world"]))

        assert [e.type for e in events] == ["token", "token", "token", "complete"]
        assert events[-1].content == "Hello, world"

    def test_empty_fragments_skipped(self):
        events = list(token_stream(["a", "", "b"]))
        assert [e.content for e in events if e.type == "token"] == ["a", "b"]

    def test_no_fragments_still_terminates(self):
        events = list(token_stream([]))
        assert len(events) == 1
        assert events[0].type == "complete"
        assert events[0].content == ""

    def test_exactly_one_terminal_event_on_error(self):
        def failing():
            yield "part"
            raise GenerationError("provider failed")

        events = list(token_stream(failing()))

        terminal = [e for e in events if e.type in ("complete", "error")]
        assert len(terminal) == 1
        assert events[-1].type == "error"
        assert events[-1].error == "provider failed"
        assert events[-1].content == "part"

    def test_unexpected_error_is_not_leaked(self):
        def failing():
            raise KeyError("secret internals")
            yield  # pragma: no cover

        events = list(token_stream(failing()))

        assert events == [StreamEvent(type="error", content="", error="Streaming failed: KeyError")]

    def test_consumer_close_closes_source(self):
        closed = []

        def source():
            try:
                yield "a"
                yield "b"
            finally:
                closed.append(True)

        stream = token_stream(source())
        assert next(stream).content == "a"
        stream.close()

        assert closed == [True]


class TestSSE:
    def test_token_frame(self):
        frame = to_sse(StreamEvent(type="token", content="héllo"))
        assert frame == 'event: token\ndata: {"content": "héllo"}\n\n'

    def test_error_frame(self):
        frame = to_sse(StreamEvent(type="error", content="x", error="boom"))
        event_line, data_line, _, _ = frame.split("\n")
        assert event_line == "event: error"
        assert json.loads(data_line[len("data: "):]) == {"content": "x", "error": "boom"}

    def test_sse_stream(self):
        frames = list(sse_stream(token_stream(["a", "b"])))
        assert frames[0].startswith("event: token\n")
        assert frames[-1] == 'event: complete\ndata: {"content": "ab"}\n\n'
