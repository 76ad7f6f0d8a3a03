from __future__ import annotations

from community_sync.domain.entities.message import ChatMessage
from community_sync.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> ChatMessage:
    return ChatMessage(
        id=str(model.id),
        author=model.username,
        body=model.message,
        created_at=model.created_at,
    )
