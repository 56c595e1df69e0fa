"""Token streams: provider fragments to a finite sequence of events.

A stream yields one ``token`` event per non-empty fragment and then exactly
one terminal event, ``complete`` or ``error``. Producer failures become the
``error`` event instead of an exception, so an HTTP response that has already
started can still end cleanly. The consumer stops early by closing the
generator, which also closes the provider stream.
"""

import json
from typing import Iterable, Iterator, Literal

from pydantic import BaseModel

from ..errors import RAGError
from ..logger import logger

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class StreamEvent(BaseModel):
    type: Literal["token", "complete", "error"]
    content: str = ""
    error: str | None = None


def token_stream(fragments: Iterable[str]) -> Iterator[StreamEvent]:
    """Wrap a fragment iterator as a stream of events ending in one terminal event."""
    parts: list[str] = []
    iterator = iter(fragments)
    try:
        for fragment in iterator:
            if not fragment:
                continue
            parts.append(fragment)
            yield StreamEvent(type="token", content=fragment)
    except GeneratorExit:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
        logger.info("stream closed by consumer", fragments_sent=len(parts))
        raise
    except RAGError as e:
        yield StreamEvent(type="error", content="".join(parts), error=e.message)
        return
    except Exception as e:
        logger.exception("unexpected streaming error", fragments_sent=len(parts))
        yield StreamEvent(
            type="error", content="".join(parts), error=f"Streaming failed: {type(e).__name__}"
        )
        return

    yield StreamEvent(type="complete", content="".join(parts))


def to_sse(event: StreamEvent) -> str:
    """Format an event as a Server-Sent Events frame."""
    data = {"content": event.content}
    if event.error is not None:
        data["error"] = event.error
    return f"event: {event.type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def sse_stream(events: Iterable[StreamEvent]) -> Iterator[str]:
    """SSE frames for a stream of events."""
    for event in events:
        yield to_sse(event)
