"""Client-side view of a shared chat topic.

Messages reach the local list by two independent paths: the optimistic
append after a successful durable insert, and broadcast delivery from other
subscribers. Both paths go through the same id-keyed append, so the final
list does not depend on which arrives first. The list is never re-sorted:
store order from history, then arrival order for live messages.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

from pydantic import ValidationError as PayloadValidationError

from community_sync.application.dto.broadcast import BroadcastMessage
from community_sync.application.exceptions import (
    BroadcastSendFailed,
    ChannelDisconnected,
    EmptyMessageError,
    HistoryLoadError,
    MessageTooLongError,
    SendFailed,
    StoreError,
    SubscriptionError,
)
from community_sync.application.ports.bus import ChannelSession, RealtimeChannel
from community_sync.application.ports.clock import Clock, SystemClock
from community_sync.application.ports.notifier import Notifier
from community_sync.application.repositories.message import MessageStore
from community_sync.domain.entities.message import ChatMessage
from community_sync.domain.entities.presence import PresenceSnapshot
from community_sync.domain.value_objects.enums import ChannelStatus

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "community-chat"
DEFAULT_EVENT = "new-message"


class ChatObserver(Protocol):
    def message_added(self, message: ChatMessage) -> None: ...

    def presence_changed(self, snapshot: PresenceSnapshot) -> None: ...


class Subscription:
    """Handle returned by :meth:`ChatSynchronizer.subscribe`.

    Channel callbacks are routed through this object so that a disposed
    subscription stops reaching the synchronizer immediately, even if the
    transport delivers a few more events while it is shutting down.
    """

    def __init__(self, synchronizer: ChatSynchronizer, topic: str) -> None:
        self._sync = synchronizer
        self.topic = topic
        self._session: ChannelSession | None = None
        self._announce_pending = False
        self.active = True

    @property
    def session(self) -> ChannelSession | None:
        return self._session

    async def _attach(self, session: ChannelSession) -> None:
        self._session = session
        if self._announce_pending and self.active:
            self._announce_pending = False
            await self._sync._announce(session)

    async def on_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        if self.active:
            self._sync._handle_broadcast(event, payload)

    async def on_presence_sync(self, state: dict[str, dict[str, Any]]) -> None:
        if self.active:
            self._sync.on_presence_sync(state)

    async def on_status(self, status: ChannelStatus) -> None:
        if not self.active:
            return
        if status == ChannelStatus.SUBSCRIBED:
            if self._session is None:
                self._announce_pending = True
                return
            await self._sync._announce(self._session)
        elif status in (ChannelStatus.CHANNEL_ERROR, ChannelStatus.TIMED_OUT):
            logger.warning(
                "Channel %s reported %s; live delivery paused until it resubscribes",
                self.topic,
                status,
            )
        else:
            logger.info("Channel %s status=%s", self.topic, status)

    async def dispose(self) -> None:
        """Leave presence and release the session. Only the first call has effect."""
        if not self.active:
            logger.warning("Subscription to %s already disposed", self.topic)
            return
        self.active = False
        await self._sync._release(self)

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self.active:
            await self.dispose()


class ChatSynchronizer:
    def __init__(
        self,
        store: MessageStore,
        channel: RealtimeChannel,
        identity: str,
        *,
        topic: str = DEFAULT_TOPIC,
        event: str = DEFAULT_EVENT,
        history_limit: int = 50,
        max_length: int = 2000,
        notifier: Notifier | None = None,
        observer: ChatObserver | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._channel = channel
        self._identity = identity
        self._topic = topic
        self._event = event
        self._history_limit = history_limit
        self._max_length = max_length
        self._notifier = notifier
        self._observer = observer
        self._clock = clock or SystemClock()

        self._messages: list[ChatMessage] = []
        self._ids: set[str] = set()
        self._presence = PresenceSnapshot()
        self._subscription: Subscription | None = None

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def presence(self) -> PresenceSnapshot:
        return self._presence

    @property
    def online_count(self) -> int:
        return self._presence.count

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_history(self) -> tuple[ChatMessage, ...]:
        """Seed the list from the store's most recent messages.

        Can be called again later to recover messages missed while the
        channel was down; entries already delivered live are kept after
        the fetched window.
        """
        try:
            history = await self._store.recent(limit=self._history_limit)
        except StoreError as exc:
            logger.warning("Failed to load chat history: %s", exc.detail)
            raise HistoryLoadError("chat history unavailable") from exc

        fetched: list[ChatMessage] = []
        fetched_ids: set[str] = set()
        for msg in history:
            if msg.id not in fetched_ids:
                fetched.append(msg)
                fetched_ids.add(msg.id)
        live = [m for m in self._messages if m.id not in fetched_ids]

        self._messages = fetched + live
        self._ids = fetched_ids | {m.id for m in live}
        logger.debug("Loaded %d history messages (%d live kept)", len(fetched), len(live))
        return self.messages

    # ------------------------------------------------------------------
    # Channel
    # ------------------------------------------------------------------

    async def subscribe(self, topic: str | None = None) -> Subscription:
        """Attach to the topic and announce presence once the session is active.

        The returned :class:`Subscription` must be disposed exactly once.
        """
        if self._subscription is not None:
            raise SubscriptionError(f"already subscribed to {self._subscription.topic}")

        topic = topic or self._topic
        subscription = Subscription(self, topic)
        self._subscription = subscription
        try:
            session = await self._channel.subscribe(
                topic,
                presence_key=self._identity,
                on_broadcast=subscription.on_broadcast,
                on_presence_sync=subscription.on_presence_sync,
                on_status=subscription.on_status,
            )
        except BaseException:
            subscription.active = False
            self._subscription = None
            raise

        await subscription._attach(session)
        logger.info("Subscribed to %s as %s", topic, self._identity)
        return subscription

    async def _announce(self, session: ChannelSession) -> None:
        metadata = {
            "user": self._identity,
            "online_at": self._clock.now().isoformat(),
        }
        try:
            await session.track(metadata)
        except ChannelDisconnected as exc:
            logger.warning("Presence announce failed, will retry on resubscribe: %s", exc.detail)

    async def _release(self, subscription: Subscription) -> None:
        if self._subscription is subscription:
            self._subscription = None
        session = subscription.session
        if session is None:
            return
        try:
            await session.untrack()
        except ChannelDisconnected as exc:
            logger.warning("Presence leave failed: %s", exc.detail)
        await session.unsubscribe()
        self._set_presence(PresenceSnapshot())
        logger.info("Left %s", subscription.topic)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, body: str) -> ChatMessage:
        """Insert, append locally, then broadcast.

        Raises :class:`SendFailed` (with the draft text) when the insert
        fails. A failed broadcast is logged only; the message is durable
        and reaches other clients on their next history load.
        """
        text = body.strip()
        if not text:
            raise EmptyMessageError("message is empty")
        if len(text) > self._max_length:
            raise MessageTooLongError(f"message exceeds {self._max_length} characters")

        try:
            message = await self._store.insert(self._identity, text)
        except StoreError as exc:
            logger.warning("Failed to send message: %s", exc.detail)
            raise SendFailed("message could not be saved", draft=text) from exc

        self._append(message)
        await self._broadcast(message)
        return message

    async def _broadcast(self, message: ChatMessage) -> None:
        subscription = self._subscription
        session = subscription.session if subscription else None
        if session is None:
            logger.warning("Channel not ready; message %s not broadcast", message.id)
            return
        payload = BroadcastMessage.from_entity(message).to_payload()
        try:
            await session.broadcast(self._event, payload)
        except BroadcastSendFailed as exc:
            logger.warning("Broadcast of message %s failed: %s", message.id, exc.detail)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _handle_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        if event != self._event:
            logger.debug("Ignoring broadcast event %s", event)
            return
        self.on_broadcast_message(payload)

    def on_broadcast_message(self, payload: Mapping[str, Any] | ChatMessage) -> bool:
        """Append a delivered message unless its id is already present.

        Returns True when the message was new.
        """
        if isinstance(payload, ChatMessage):
            message = payload
        else:
            try:
                message = BroadcastMessage.model_validate(payload).to_entity()
            except PayloadValidationError:
                logger.warning("Dropping malformed broadcast payload", exc_info=True)
                return False

        if not self._append(message):
            return False
        if message.author != self._identity and self._notifier is not None:
            self._notifier.notify(message)
        return True

    def on_presence_sync(self, state: Mapping[str, dict[str, Any]] | None = None) -> int:
        """Replace the presence snapshot wholesale and return the online count."""
        if state is None:
            subscription = self._subscription
            session = subscription.session if subscription else None
            state = session.presence_state() if session else {}
        self._set_presence(PresenceSnapshot.from_state(state))
        logger.debug("Online users: %d", self._presence.count)
        return self._presence.count

    def _set_presence(self, snapshot: PresenceSnapshot) -> None:
        self._presence = snapshot
        if self._observer is not None:
            self._observer.presence_changed(snapshot)

    def _append(self, message: ChatMessage) -> bool:
        if message.id in self._ids:
            return False
        self._ids.add(message.id)
        self._messages.append(message)
        if self._observer is not None:
            self._observer.message_added(message)
        return True
