import asyncio

import pytest

from chat_api.services.prompts import TITLE_PROMPT
from chat_api.services.title_generator import (
    DEFAULT_TITLE,
    MAX_TITLE_LENGTH,
    _clean_title,
    _create_fallback_title,
    generate_title,
    generate_title_from_user_message,
)


class TitleProvider:
    def __init__(self, answer="Weather in Paris", error=None, delay=0.0):
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls = []

    async def complete_text(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


def test_fallback_title_uses_first_five_words():
    assert _create_fallback_title("what is the weather like in paris today") == "what is the weather like"
    assert _create_fallback_title("") == DEFAULT_TITLE
    assert _create_fallback_title("   ") == DEFAULT_TITLE
    assert len(_create_fallback_title("x" * 200)) == MAX_TITLE_LENGTH


def test_clean_title_strips_quotes_and_extra_lines():
    assert _clean_title('"Paris Weather"') == "Paris Weather"
    assert _clean_title("'Paris Weather'\nsecond line") == "Paris Weather"
    assert _clean_title("  spaced  ") == "spaced"
    assert len(_clean_title("y" * 120)) == MAX_TITLE_LENGTH


@pytest.mark.asyncio
async def test_generate_title_sends_title_prompt_and_limits():
    provider = TitleProvider()

    title = await generate_title("what's the weather in paris?", provider, model="title-model")

    assert title == "Weather in Paris"
    messages, kwargs = provider.calls[0]
    assert messages[0] == {"role": "system", "content": TITLE_PROMPT}
    assert messages[1] == {"role": "user", "content": "what's the weather in paris?"}
    assert kwargs["model"] == "title-model"
    assert kwargs["max_tokens"] == 30


@pytest.mark.asyncio
async def test_generate_title_returns_none_for_blank_message():
    provider = TitleProvider()

    assert await generate_title("   ", provider) is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_generate_title_returns_none_on_provider_error():
    assert await generate_title("hello", TitleProvider(error=RuntimeError("down"))) is None


@pytest.mark.asyncio
async def test_generate_title_returns_none_on_timeout():
    assert await generate_title("hello", TitleProvider(delay=0.5), timeout=0.05) is None


@pytest.mark.asyncio
async def test_title_from_user_message_falls_back_to_message_words():
    provider = TitleProvider(answer='""')

    title = await generate_title_from_user_message("plan a trip to kyoto in april please", provider)

    assert title == "plan a trip to kyoto"


@pytest.mark.asyncio
async def test_title_from_user_message_is_never_empty():
    title = await generate_title_from_user_message("", TitleProvider(error=RuntimeError("down")))

    assert title == DEFAULT_TITLE
