from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol

from community_sync.domain.value_objects.enums import ChannelStatus

OnBroadcast = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]
OnPresenceSync = Callable[[dict[str, dict[str, Any]]], Coroutine[Any, Any, None]]
OnStatus = Callable[[ChannelStatus], Coroutine[Any, Any, None]]


class ChannelSession(Protocol):
    """One live subscription to a topic."""

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None: ...

    async def track(self, metadata: dict[str, Any]) -> None: ...

    async def untrack(self) -> None: ...

    def presence_state(self) -> dict[str, dict[str, Any]]: ...

    async def unsubscribe(self) -> None: ...


class RealtimeChannel(Protocol):
    async def subscribe(
        self,
        topic: str,
        *,
        presence_key: str,
        on_broadcast: OnBroadcast,
        on_presence_sync: OnPresenceSync,
        on_status: OnStatus,
    ) -> ChannelSession: ...
