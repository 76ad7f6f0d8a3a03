from __future__ import annotations

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_sync.application.exceptions import StoreError
from community_sync.domain.entities.message import ChatMessage
from community_sync.infrastructure.db.mappers import message as mapper
from community_sync.infrastructure.db.models.message import MessageModel


class SqlAlchemyMessageStore:
    """Implements application.repositories.message.MessageStore.

    Each call runs in its own short-lived session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def recent(self, *, limit: int = 50) -> list[ChatMessage]:
        latest = (
            select(MessageModel)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
            .subquery()
        )
        stmt = (
            select(MessageModel)
            .join(latest, MessageModel.id == latest.c.id)
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [mapper.model_to_entity(m) for m in result.scalars().all()]
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"history query failed: {exc.__class__.__name__}") from exc

    async def insert(self, author: str, body: str) -> ChatMessage:
        stmt = (
            insert(MessageModel)
            .values(username=author, message=body)
            .returning(MessageModel)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = result.scalar_one()
                await session.commit()
                return mapper.model_to_entity(row)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"insert failed: {exc.__class__.__name__}") from exc
