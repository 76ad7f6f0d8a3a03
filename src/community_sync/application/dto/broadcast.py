from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from community_sync.domain.entities.message import ChatMessage


class BroadcastMessage(BaseModel):
    """Wire shape of a chat message sent over the realtime channel."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    author: str = Field(alias="username")
    body: str = Field(alias="message")
    created_at: datetime

    @classmethod
    def from_entity(cls, message: ChatMessage) -> BroadcastMessage:
        return cls(
            id=message.id,
            author=message.author,
            body=message.body,
            created_at=message.created_at,
        )

    def to_entity(self) -> ChatMessage:
        return ChatMessage(
            id=self.id,
            author=self.author,
            body=self.body,
            created_at=self.created_at,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
