"""Relay of provider text streams to the HTTP response body.

The relay forwards every non-empty text fragment as soon as it arrives,
in arrival order, one outbound write per inbound fragment. Failures after
the response has started (provider errors, the stream exceeding its time
limit) are logged and reported to the client with a fixed fallback
message instead of the raw exception.

What happens to the assembled assistant response is decided by a
ResponseAssembler:
    - consume_stream(): called once the stream is over (persistence)
    - merge_into_stream(): auxiliary text streams (e.g. tool output)
      relayed after the provider stream

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, List

import structlog

from chat_api.db.engine import get_session_context
from chat_api.db.models import Message
from chat_api.services.errors import STREAM_FALLBACK_MESSAGE
from chat_api.services.observability import record_metric
from chat_api.services.provider import TextStream

logger = structlog.get_logger(__name__)


# ============================================================================
# Response Assembly
# ============================================================================

class ResponseAssembler(ABC):
    """
    Collects the assistant response while it is relayed.

    Subclasses decide what consume_stream() does with the result.
    """

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._pending: List[TextStream] = []
        self.failed: bool = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def record(self, fragment: str) -> None:
        self._parts.append(fragment)

    def merge_into_stream(self, stream: TextStream) -> None:
        """Queue an auxiliary text stream to be relayed after the provider stream."""
        self._pending.append(stream)

    def take_pending(self) -> List[TextStream]:
        pending, self._pending = self._pending, []
        return pending

    @abstractmethod
    async def consume_stream(self) -> None:
        """Handle the assembled response once relaying has ended."""


class PersistingResponseAssembler(ResponseAssembler):
    """Saves the assistant response as a Message of the chat."""

    def __init__(self, chat_id: str) -> None:
        super().__init__()
        self.chat_id = chat_id

    async def consume_stream(self) -> None:
        content = self.text
        if not content:
            return
        try:
            async with get_session_context() as session:
                session.add(Message(chat_id=self.chat_id, role="assistant", content=content))
                # Commit happens automatically on context exit
        except Exception as e:
            # The response body is already sent; nothing to report to the client
            logger.warning("chat.stream.persist_failed", chat_id=self.chat_id, error=str(e))
            return

        logger.debug("chat.stream.persisted", chat_id=self.chat_id, characters=len(content))


# ============================================================================
# Relay
# ============================================================================

async def _close_stream(stream: TextStream) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.warning("chat.stream.close_failed", error=str(e))


async def relay_text_stream(
    stream: TextStream,
    assembler: ResponseAssembler,
    *,
    max_duration: float,
    chat_id: str,
) -> AsyncIterator[str]:
    """
    Forward a provider text stream, then any merged auxiliary streams.

    Args:
        stream: Provider text fragments
        assembler: Receives every forwarded fragment
        max_duration: Seconds the whole relay may take
        chat_id: Chat the response belongs to (logging only)

    Yields:
        str: Text fragments, followed by STREAM_FALLBACK_MESSAGE on failure
    """
    loop = asyncio.get_running_loop()
    started = time.perf_counter()
    deadline = loop.time() + max_duration
    streams: List[TextStream] = [stream]

    try:
        while streams:
            current = streams.pop(0)
            iterator = aiter(current)
            try:
                while True:
                    # The deadline only covers waiting on the producer, never the client write
                    async with asyncio.timeout_at(deadline):
                        try:
                            fragment = await anext(iterator)
                        except StopAsyncIteration:
                            break
                    if not fragment:
                        continue
                    assembler.record(fragment)
                    yield fragment
            finally:
                await _close_stream(current)
            streams.extend(assembler.take_pending())
    except TimeoutError:
        assembler.failed = True
        logger.warning("chat.stream.timeout", chat_id=chat_id, max_duration=max_duration)
        yield STREAM_FALLBACK_MESSAGE
    except Exception as e:
        assembler.failed = True
        logger.exception("chat.stream.error", chat_id=chat_id, error=str(e))
        yield STREAM_FALLBACK_MESSAGE
    finally:
        for pending in streams + assembler.take_pending():
            await _close_stream(pending)
        latency_ms = (time.perf_counter() - started) * 1000
        record_metric("chat.stream", latency_ms, success=not assembler.failed)
        logger.info(
            "chat.stream.complete",
            chat_id=chat_id,
            failed=assembler.failed,
            duration_ms=round(latency_ms, 2),
        )
        await assembler.consume_stream()
