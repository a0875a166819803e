"""Relay behaviour: ordering, empty fragments, failures, merged streams, early close."""
import asyncio

import pytest

from chat_api.services.errors import ProviderError, STREAM_FALLBACK_MESSAGE
from chat_api.services.observability import get_metric_snapshot
from chat_api.services.streaming import relay_text_stream

from conftest import RecordingAssembler


async def _fragments(*parts, error=None, delay=0.0, closed=None):
    try:
        for part in parts:
            if delay:
                await asyncio.sleep(delay)
            yield part
        if error is not None:
            raise error
    finally:
        if closed is not None:
            closed.append(True)


async def _collect(relay) -> list:
    return [fragment async for fragment in relay]


@pytest.mark.asyncio
async def test_relay_forwards_fragments_in_order():
    assembler = RecordingAssembler("c1")

    out = await _collect(relay_text_stream(_fragments("Hel", "lo", "!"), assembler, max_duration=5, chat_id="c1"))

    assert out == ["Hel", "lo", "!"]
    assert assembler.consumed == "Hello!"
    assert not assembler.failed


@pytest.mark.asyncio
async def test_relay_skips_empty_fragments():
    assembler = RecordingAssembler("c1")

    out = await _collect(relay_text_stream(_fragments("", "a", "", "b"), assembler, max_duration=5, chat_id="c1"))

    assert out == ["a", "b"]


@pytest.mark.asyncio
async def test_relay_empty_stream_completes_without_output():
    assembler = RecordingAssembler("c1")

    out = await _collect(relay_text_stream(_fragments(), assembler, max_duration=5, chat_id="c1"))

    assert out == []
    assert assembler.consumed == ""
    assert not assembler.failed


@pytest.mark.asyncio
async def test_relay_provider_error_ends_with_fallback():
    assembler = RecordingAssembler("c1")
    closed = []
    stream = _fragments("partial", error=ProviderError("secret upstream detail"), closed=closed)

    out = await _collect(relay_text_stream(stream, assembler, max_duration=5, chat_id="c1"))

    assert out == ["partial", STREAM_FALLBACK_MESSAGE]
    assert assembler.failed
    assert assembler.consumed == "partial"
    assert closed == [True]
    assert get_metric_snapshot()["chat.stream"]["failures"] == 1.0


@pytest.mark.asyncio
async def test_relay_exceeding_max_duration_ends_with_fallback():
    assembler = RecordingAssembler("c1")
    closed = []
    stream = _fragments("a", "b", "c", delay=0.2, closed=closed)

    out = await _collect(relay_text_stream(stream, assembler, max_duration=0.3, chat_id="c1"))

    assert out[0] == "a"
    assert out[-1] == STREAM_FALLBACK_MESSAGE
    assert "c" not in out
    assert assembler.failed
    assert closed == [True]


@pytest.mark.asyncio
async def test_relay_merged_streams_follow_provider_stream():
    assembler = RecordingAssembler("c1")
    assembler.merge_into_stream(_fragments(" [tool]", " done"))

    out = await _collect(relay_text_stream(_fragments("answer"), assembler, max_duration=5, chat_id="c1"))

    assert out == ["answer", " [tool]", " done"]
    assert assembler.consumed == "answer [tool] done"


@pytest.mark.asyncio
async def test_relay_early_close_closes_provider_stream():
    assembler = RecordingAssembler("c1")
    closed = []
    relay = relay_text_stream(_fragments("a", "b", closed=closed), assembler, max_duration=5, chat_id="c1")

    assert await anext(relay) == "a"
    await relay.aclose()

    assert closed == [True]
    assert assembler.consumed == "a"


@pytest.mark.asyncio
async def test_relay_early_close_also_closes_pending_merged_streams():
    assembler = RecordingAssembler("c1")
    provider_closed = []
    relay = relay_text_stream(
        _fragments("a", "b", closed=provider_closed), assembler, max_duration=5, chat_id="c1"
    )

    assert await anext(relay) == "a"
    assembler.merge_into_stream(_fragments("x"))
    await relay.aclose()

    assert provider_closed == [True]
    assert assembler.take_pending() == []
