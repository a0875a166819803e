"""
Chat route: streamed completions and chat deletion.

Implements:
    POST   /api/chat                      - Stream an assistant reply as plain text
    DELETE /api/chat?id=<chat id>         - Delete a chat owned by the caller
    GET    /api/chat/{chat_id}/messages   - Chat history of the caller's chat

POST Request Schema:
{
    "id": "c1",                                   # Chat id (client-supplied)
    "messages": [                                 # Full conversation so far
        {"role": "user", "content": "hello"}
    ],
    "selectedChatModel": "chat-model"             # System prompt variant
}

POST Response:
    200 text/plain streamed body of raw text deltas, in provider order.
    Errors after the stream starts end it with a fixed fallback message.

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
import json
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional

import pydantic
import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from chat_api.config import ServiceSettings, get_settings
from chat_api.db.models import Message
from chat_api.db.queries import ChatRepository, get_repository
from chat_api.services.auth import AuthSession, auth, session_user_id
from chat_api.services.errors import (
    AuthError,
    NO_USER_MESSAGE,
    NotFoundError,
    OwnershipError,
    ValidationError,
    internal_error,
)
from chat_api.services.observability import emit_audit_event
from chat_api.services.prompts import system_prompt
from chat_api.services.provider import ChatProvider, get_provider
from chat_api.services.streaming import (
    PersistingResponseAssembler,
    ResponseAssembler,
    relay_text_stream,
)
from chat_api.services.title_generator import generate_title_from_user_message

logger = structlog.get_logger(__name__)

router = APIRouter()

DEFAULT_CHAT_MODEL: str = "chat-model"


# ============================================================================
# Request/Response Models
# ============================================================================

class ChatMessage(BaseModel):
    """
    One turn of the conversation as sent by the client.

    Attributes:
        id: Client message id, kept when the message is persisted
        role: Message author role (system, user, assistant)
        content: Message text
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    role: Literal["system", "user", "assistant"]
    content: str = ""


class ChatRequest(BaseModel):
    """
    POST /api/chat request body.

    Attributes:
        id: Chat identifier (client-supplied)
        messages: Ordered conversation so far
        selected_chat_model: System prompt variant (JSON key selectedChatModel)
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    messages: List[ChatMessage]
    selected_chat_model: str = Field(default=DEFAULT_CHAT_MODEL, alias="selectedChatModel")


class MessageResponse(BaseModel):
    id: str
    role: str
    content: str
    created_at: str


# ============================================================================
# Helpers
# ============================================================================

def get_most_recent_user_message(messages: List[ChatMessage]) -> Optional[ChatMessage]:
    """Last user-role message of the conversation, or None."""
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


async def parse_chat_request(request: Request) -> ChatRequest:
    """
    Parse and validate the POST body.

    Parsed inside the handler, after the session check, so unauthenticated
    callers get 401 whatever they send.

    Raises:
        ValidationError: Body is not JSON or does not match ChatRequest
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")

    try:
        return ChatRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        first_error = e.errors()[0]
        param = ".".join(str(l) for l in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")
        raise ValidationError(f"Invalid request body: {param}: {message}" if param else message)


def get_assembler_factory() -> Callable[[str], ResponseAssembler]:
    """FastAPI dependency selecting how assistant responses are assembled."""
    return PersistingResponseAssembler


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/api/chat")
async def create_chat_completion(
    request: Request,
    session: Optional[AuthSession] = Depends(auth),
    repository: ChatRepository = Depends(get_repository),
    provider: ChatProvider = Depends(get_provider),
    settings: ServiceSettings = Depends(get_settings),
    assembler_factory: Callable[[str], ResponseAssembler] = Depends(get_assembler_factory),
):
    """
    Stream a completion for the latest user turn of a chat.

    1. Checks the session (401) and the body (400)
    2. Creates the chat on its first message, titled from that message
    3. Saves the most recent user message
    4. Streams the provider's reply as plain text deltas

    Raises:
        AuthError: 401 when the caller has no usable session
        ValidationError: 400 for a malformed body or no user message
        OwnershipError: 401 when the chat belongs to another user
        PersistenceError: 500 when the chat or message cannot be saved
    """
    user_id = session_user_id(session)
    if user_id is None:
        raise AuthError()

    chat_request = await parse_chat_request(request)

    user_message = get_most_recent_user_message(chat_request.messages)
    if user_message is None:
        raise ValidationError(NO_USER_MESSAGE)

    chat = await repository.get_chat_by_id(chat_request.id)
    if chat is None:
        title = await generate_title_from_user_message(
            user_message.content,
            provider,
            model=settings.get_title_model(),
        )
        await repository.save_chat(chat_request.id, user_id, title)
        logger.info("chat.created", chat_id=chat_request.id, title=title)
    elif chat.user_id != user_id:
        logger.warning("chat.completion.denied", chat_id=chat_request.id)
        raise OwnershipError()

    await repository.save_messages([
        Message(
            id=user_message.id or str(uuid.uuid4()),
            chat_id=chat_request.id,
            role="user",
            content=user_message.content,
            created_at=datetime.now(timezone.utc),
        )
    ])

    provider_messages = [
        {"role": "system", "content": system_prompt(chat_request.selected_chat_model)},
        *({"role": m.role, "content": m.content} for m in chat_request.messages),
    ]

    logger.info(
        "chat.completion.start",
        chat_id=chat_request.id,
        selected_chat_model=chat_request.selected_chat_model,
        message_count=len(chat_request.messages),
    )

    return StreamingResponse(
        relay_text_stream(
            provider.stream_text(provider_messages),
            assembler_factory(chat_request.id),
            max_duration=settings.chat_max_duration,
            chat_id=chat_request.id,
        ),
        media_type="text/plain; charset=utf-8",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no"  # Disable nginx buffering
        }
    )


@router.delete("/api/chat")
async def delete_chat(
    chat_id: Optional[str] = Query(default=None, alias="id"),
    session: Optional[AuthSession] = Depends(auth),
    repository: ChatRepository = Depends(get_repository),
):
    """
    Delete a chat and its messages.

    Returns:
        200 "Chat deleted"; 404 without id or for an unknown chat;
        401 without a session or when the caller is not the owner;
        500 when the lookup or delete fails
    """
    if not chat_id:
        raise NotFoundError()

    user_id = session_user_id(session)
    if user_id is None:
        raise AuthError()

    try:
        chat = await repository.get_chat_by_id(chat_id)
    except Exception as e:
        logger.exception("chat.delete.lookup_failed", chat_id=chat_id, error=str(e))
        return internal_error()

    if chat is None:
        raise NotFoundError()

    if chat.user_id != user_id:
        logger.warning("chat.delete.denied", chat_id=chat_id)
        raise OwnershipError()

    try:
        await repository.delete_chat_by_id(chat_id)
    except Exception as e:
        logger.exception("chat.delete.failed", chat_id=chat_id, error=str(e))
        return internal_error()

    emit_audit_event("chat.deleted", chat_id=chat_id, user_id=user_id)
    logger.info("chat.deleted", chat_id=chat_id)

    return PlainTextResponse("Chat deleted", status_code=200)


@router.get("/api/chat/{chat_id}/messages", response_model=List[MessageResponse])
async def get_chat_messages(
    chat_id: str,
    session: Optional[AuthSession] = Depends(auth),
    repository: ChatRepository = Depends(get_repository),
):
    """
    Get the messages of one of the caller's chats in chronological order.

    Raises:
        AuthError: 401 without a session
        NotFoundError: 404 for an unknown chat
        OwnershipError: 401 when the caller is not the owner
    """
    user_id = session_user_id(session)
    if user_id is None:
        raise AuthError()

    chat = await repository.get_chat_by_id(chat_id)
    if chat is None:
        raise NotFoundError()
    if chat.user_id != user_id:
        raise OwnershipError()

    messages = await repository.get_messages_by_chat_id(chat_id)
    return [
        MessageResponse(
            id=m.id,
            role=m.role,
            content=m.content,
            created_at=m.created_at.isoformat()
        )
        for m in messages
    ]
