"""OpenAI-compatible completion provider (Volcengine Ark by default).

The provider client (credential + endpoint) is built once per process in
the application lifespan and handed to the routes through FastAPI
dependencies, so tests can swap in a fake.

Streaming completions are exposed as a TextStream: a lazy, finite,
non-restartable async iterator of text fragments. Relay code only ever
sees that abstraction, never SDK chunk objects.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Sequence

import httpx
import structlog
from fastapi import Request
from openai import AsyncOpenAI, OpenAIError

from chat_api.config import ServiceSettings
from chat_api.services.errors import ProviderError

logger = structlog.get_logger(__name__)

TextStream = AsyncIterator[str]


def extract_delta_text(chunk: Any) -> str:
    """Incremental text of a streaming chunk, empty string if absent."""
    choices = getattr(chunk, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


class ChatProvider:
    """Chat completions over an OpenAI-compatible API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def stream_text(self, messages: Sequence[dict[str, str]]) -> TextStream:
        """
        Stream a completion as text deltas, in provider arrival order.

        The upstream stream is closed when the iterator finishes, fails, or
        is closed early (client disconnect), releasing its connection.

        Raises:
            ProviderError: The request or the stream failed
        """
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=list(messages),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
        except OpenAIError as e:
            raise ProviderError(f"completion request failed: {e}") from e

        try:
            async for chunk in stream:
                yield extract_delta_text(chunk)
        except OpenAIError as e:
            raise ProviderError(f"completion stream failed: {e}") from e
        finally:
            await stream.close()

    async def complete_text(
        self,
        messages: Sequence[dict[str, str]],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Non-streaming completion returning the assistant text."""
        try:
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=list(messages),
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature if temperature is None else temperature,
                stream=False,
            )
        except OpenAIError as e:
            raise ProviderError(f"completion request failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self.client.close()


def create_provider(settings: ServiceSettings, http_client: httpx.AsyncClient) -> ChatProvider:
    """
    Build the process-wide provider from settings.

    Raises:
        RuntimeError: ARK_API_KEY is not configured
    """
    if not settings.ark_api_key:
        raise RuntimeError("ARK_API_KEY environment variable required")

    client = AsyncOpenAI(
        api_key=settings.ark_api_key,
        base_url=settings.ark_base_url,
        default_headers=settings.get_provider_headers(),
        http_client=http_client,
    )
    logger.info(
        "provider.init",
        base_url=settings.ark_base_url,
        model=settings.chat_model,
    )
    return ChatProvider(
        client,
        model=settings.chat_model,
        max_tokens=settings.chat_max_tokens,
        temperature=settings.chat_temperature,
    )


def get_provider(request: Request) -> ChatProvider:
    """FastAPI dependency returning the provider built at startup."""
    return request.app.state.provider
