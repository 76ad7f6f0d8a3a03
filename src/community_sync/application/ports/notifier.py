from __future__ import annotations

from typing import Protocol

from community_sync.domain.entities.message import ChatMessage


class Notifier(Protocol):
    def notify(self, message: ChatMessage) -> None: ...
