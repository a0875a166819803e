"""
SQLModel database models for Chat API.

Defines the database schema for:
    - Chat: Conversations, keyed by the client-supplied chat id
    - Message: Individual turns within a chat

Timestamps are stored in UTC.

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chat(SQLModel, table=True):
    """
    Conversation model.

    Created on the first message of a conversation; the id comes from the
    client so later turns can find it again.

    Attributes:
        id: Client-supplied chat identifier
        user_id: Identifier of the owning user
        title: Title generated from the first user message
        created_at: UTC timestamp of creation
        messages: Related Message objects (relationship)

    Table: chat
    """
    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    title: str
    created_at: datetime = Field(default_factory=utcnow)

    messages: List["Message"] = Relationship(back_populates="chat")


class Message(SQLModel, table=True):
    """
    Chat message model.

    Attributes:
        id: Message identifier (client id when supplied, otherwise a UUID)
        chat_id: Parent chat ID (foreign key)
        role: Message author role ('user', 'assistant', 'system')
        content: Message text content
        created_at: UTC timestamp of creation
        chat: Parent Chat object (relationship)

    Table: message
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    chat_id: str = Field(foreign_key="chat.id", index=True)
    role: str  # 'user', 'assistant', 'system'
    content: str
    created_at: datetime = Field(default_factory=utcnow)

    chat: Optional[Chat] = Relationship(back_populates="messages")
