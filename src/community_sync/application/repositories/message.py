from __future__ import annotations

from typing import Protocol

from community_sync.domain.entities.message import ChatMessage


class MessageReader(Protocol):
    async def recent(self, *, limit: int = 50) -> list[ChatMessage]:
        """Most recent ``limit`` messages, ordered by creation time ascending."""
        ...


class MessageWriter(Protocol):
    async def insert(self, author: str, body: str) -> ChatMessage:
        """Durably insert a message. The store assigns ``id`` and ``created_at``."""
        ...


class MessageStore(MessageReader, MessageWriter, Protocol):
    pass
