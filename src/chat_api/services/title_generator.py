"""Auto-generate chat titles from the first user message.

Asks the completion provider for a short summary title. Generation never
fails the request: on provider errors, timeouts, or an empty answer the
title falls back to the first words of the message.

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
import asyncio
from typing import Optional

import structlog

from chat_api.services.prompts import TITLE_PROMPT
from chat_api.services.provider import ChatProvider

logger = structlog.get_logger(__name__)

# Maximum length for message preview in prompt
MAX_MESSAGE_PREVIEW_LENGTH: int = 500

# Maximum length for generated title
MAX_TITLE_LENGTH: int = 80

TITLE_MAX_TOKENS: int = 30
TITLE_TEMPERATURE: float = 0.3
TITLE_TIMEOUT_SECONDS: float = 10.0

DEFAULT_TITLE: str = "New Chat"


def _create_fallback_title(message: str) -> str:
    """
    Create a fallback title from the first few words of a message.

    Args:
        message: The user message

    Returns:
        str: First 5 words, at most MAX_TITLE_LENGTH chars, or "New Chat"
    """
    if not message:
        return DEFAULT_TITLE

    words = message.split()[:5]
    fallback = " ".join(words)[:MAX_TITLE_LENGTH]
    return fallback if fallback.strip() else DEFAULT_TITLE


def _clean_title(title: str) -> str:
    """
    Clean and normalize a generated title.

    Removes surrounding quotes and whitespace, keeps the first line only,
    and truncates to max length.
    """
    lines = title.strip().splitlines()
    title = lines[0].strip() if lines else ""

    # Remove surrounding quotes
    if (title.startswith('"') and title.endswith('"')) or \
       (title.startswith("'") and title.endswith("'")):
        title = title[1:-1]

    title = title.strip('"\'').strip()

    return title[:MAX_TITLE_LENGTH]


async def generate_title(
    message: str,
    provider: ChatProvider,
    model: Optional[str] = None,
    timeout: float = TITLE_TIMEOUT_SECONDS,
) -> Optional[str]:
    """
    Generate a concise title for a conversation starting with ``message``.

    Args:
        message: The user message the conversation starts with
        provider: Completion provider used for generation
        model: Model override for title generation
        timeout: Seconds to wait for the provider

    Returns:
        Optional[str]: Generated title or None if generation fails
    """
    if not message or not message.strip():
        return None

    try:
        raw_title = await asyncio.wait_for(
            provider.complete_text(
                [
                    {"role": "system", "content": TITLE_PROMPT},
                    {"role": "user", "content": message[:MAX_MESSAGE_PREVIEW_LENGTH]},
                ],
                model=model,
                max_tokens=TITLE_MAX_TOKENS,
                temperature=TITLE_TEMPERATURE,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("title_generation.timeout", timeout=timeout, model=model)
        return None
    except Exception as e:
        logger.warning("title_generation.error", error=str(e), model=model)
        return None

    title = _clean_title(raw_title)
    if not title:
        logger.warning("title_generation.empty_response", model=model)
        return None

    logger.debug("title_generation.success", model=model, title=title)
    return title


async def generate_title_from_user_message(
    message: str,
    provider: ChatProvider,
    model: Optional[str] = None,
) -> str:
    """
    Generate a title with fallback to the first words of the message.

    Returns:
        str: Generated or fallback title (never empty)
    """
    title = await generate_title(message, provider, model)

    if title:
        return title

    return _create_fallback_title(message)
