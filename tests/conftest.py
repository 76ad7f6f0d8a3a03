"""Shared test fixtures."""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import pytest

from community_sync.application.exceptions import (
    BroadcastSendFailed,
    ChannelDisconnected,
    StoreError,
)
from community_sync.application.ports.bus import OnBroadcast, OnPresenceSync, OnStatus
from community_sync.domain.entities.message import ChatMessage
from community_sync.domain.value_objects.enums import ChannelStatus

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_message(
    *,
    message_id: str = "m1",
    author: str = "AsyncNarwhal1",
    body: str = "hello",
    minute: int = 0,
) -> ChatMessage:
    return ChatMessage(
        id=message_id,
        author=author,
        body=body,
        created_at=BASE_TIME + timedelta(minutes=minute),
    )


class FixedClock:
    def now(self) -> datetime:
        return BASE_TIME

    def timestamp(self) -> float:
        return BASE_TIME.timestamp()


@dataclass
class FakeMessageStore:
    """Shared durable store; ids are assigned on insert."""

    rows: list[ChatMessage] = field(default_factory=list)
    fail_insert: bool = False
    fail_recent: bool = False
    insert_calls: int = 0
    before_return: Callable[[ChatMessage], Awaitable[None]] | None = None
    _seq: itertools.count = field(default_factory=lambda: itertools.count(1))

    async def recent(self, *, limit: int = 50) -> list[ChatMessage]:
        if self.fail_recent:
            raise StoreError("connection refused")
        return list(self.rows[-limit:])

    async def insert(self, author: str, body: str) -> ChatMessage:
        self.insert_calls += 1
        if self.fail_insert:
            raise StoreError("connection refused")
        n = next(self._seq)
        msg = ChatMessage(
            id=f"m{n}",
            author=author,
            body=body,
            created_at=BASE_TIME + timedelta(seconds=n),
        )
        self.rows.append(msg)
        if self.before_return is not None:
            await self.before_return(msg)
        return msg


@dataclass
class FakeSession:
    hub: FakeChannel
    topic: str
    presence_key: str
    on_broadcast: OnBroadcast
    on_presence_sync: OnPresenceSync
    on_status: OnStatus
    broadcasts: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    fail_broadcast: bool = False
    fail_track: bool = False
    track_calls: int = 0
    unsubscribed: bool = False

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        if self.fail_broadcast:
            raise BroadcastSendFailed("socket closed")
        self.broadcasts.append((event, payload))
        for other in list(self.hub.sessions):
            if other is not self and other.topic == self.topic:
                await other.on_broadcast(event, payload)

    async def track(self, metadata: dict[str, Any]) -> None:
        self.track_calls += 1
        if self.fail_track:
            raise ChannelDisconnected("not connected")
        self.hub.presence[self.presence_key] = dict(metadata)
        await self.hub.sync(self.topic)

    async def untrack(self) -> None:
        if self.hub.presence.pop(self.presence_key, None) is not None:
            await self.hub.sync(self.topic)

    def presence_state(self) -> dict[str, dict[str, Any]]:
        return {k: dict(v) for k, v in self.hub.presence.items()}

    async def unsubscribe(self) -> None:
        self.unsubscribed = True
        self.hub.sessions.remove(self)


@dataclass
class FakeChannel:
    """In-memory hub; every session subscribed through it sees the others."""

    sessions: list[FakeSession] = field(default_factory=list)
    presence: dict[str, dict[str, Any]] = field(default_factory=dict)
    status_during_subscribe: bool = False

    async def subscribe(
        self,
        topic: str,
        *,
        presence_key: str,
        on_broadcast: OnBroadcast,
        on_presence_sync: OnPresenceSync,
        on_status: OnStatus,
    ) -> FakeSession:
        session = FakeSession(
            self, topic, presence_key, on_broadcast, on_presence_sync, on_status
        )
        self.sessions.append(session)
        if self.status_during_subscribe:
            await on_status(ChannelStatus.SUBSCRIBED)
        return session

    async def sync(self, topic: str) -> None:
        for s in list(self.sessions):
            if s.topic == topic:
                await s.on_presence_sync(s.presence_state())

    async def activate(self) -> None:
        for s in list(self.sessions):
            await s.on_status(ChannelStatus.SUBSCRIBED)


@dataclass
class RecordingNotifier:
    notified: list[ChatMessage] = field(default_factory=list)

    def notify(self, message: ChatMessage) -> None:
        self.notified.append(message)


@dataclass
class FakeMedia:
    """Media element double. Queue exceptions in ``play_errors`` to fail starts."""

    play_errors: list[Exception | None] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    loaded: list[str] = field(default_factory=list)
    volume: float | None = None
    position: float = 12.5
    during_play: Callable[[], None] | None = None

    async def play(self) -> None:
        self.calls.append("play")
        if self.during_play is not None:
            self.during_play()
        error = self.play_errors.pop(0) if self.play_errors else None
        if error is not None:
            raise error

    def pause(self) -> None:
        self.calls.append("pause")

    def seek(self, position: float) -> None:
        self.calls.append("seek")
        self.position = position

    def load(self, url: str) -> None:
        self.calls.append("load")
        self.loaded.append(url)

    def set_volume(self, volume: float) -> None:
        self.volume = volume


@dataclass
class _Timer:
    delay: float
    callback: Callable[[], Awaitable[None]]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    timers: list[_Timer] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> _Timer:
        timer = _Timer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[_Timer]:
        return [t for t in self.timers if not t.cancelled]

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    async def fire_next(self) -> None:
        timer = self.pending[0]
        timer.cancelled = True
        await timer.callback()


@dataclass
class MemoryStorage:
    data: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


SOURCES = {
    "code": "https://radio.example/code.mp3",
    "rain": "https://radio.example/rain",
}


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def media() -> FakeMedia:
    return FakeMedia()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
