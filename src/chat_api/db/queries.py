"""Chat and message queries used by the chat routes.

All operations run on the request-scoped AsyncSession. Write operations
commit before returning; a failed commit is rolled back and re-raised as
PersistenceError.
"""
from typing import Iterable, List, Optional

import structlog
from fastapi import Depends
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from chat_api.db.engine import get_session
from chat_api.db.models import Chat, Message
from chat_api.services.errors import PersistenceError

logger = structlog.get_logger(__name__)


class ChatRepository:
    """Query layer over one AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_chat_by_id(self, chat_id: str) -> Optional[Chat]:
        """Return the chat, or None when no chat has this id."""
        return await self.session.get(Chat, chat_id)

    async def save_chat(self, chat_id: str, user_id: str, title: str) -> Chat:
        chat = Chat(id=chat_id, user_id=user_id, title=title)
        self.session.add(chat)
        await self._commit("save_chat", chat_id=chat_id)
        return chat

    async def save_messages(self, messages: Iterable[Message]) -> List[Message]:
        saved = list(messages)
        self.session.add_all(saved)
        await self._commit("save_messages", count=len(saved))
        return saved

    async def delete_chat_by_id(self, chat_id: str) -> None:
        """Delete a chat and all its messages."""
        await self.session.execute(delete(Message).where(Message.chat_id == chat_id))
        await self.session.execute(delete(Chat).where(Chat.id == chat_id))
        await self._commit("delete_chat_by_id", chat_id=chat_id)

    async def get_messages_by_chat_id(self, chat_id: str) -> List[Message]:
        """Messages of a chat in chronological order."""
        result = await self.session.execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at)
        )
        return list(result.scalars().all())

    async def _commit(self, operation: str, **context) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("chat.persistence.failed", operation=operation, error=str(e), **context)
            raise PersistenceError(f"{operation} failed") from e


async def get_repository(session: AsyncSession = Depends(get_session)) -> ChatRepository:
    """FastAPI dependency providing a ChatRepository for the request."""
    return ChatRepository(session)
