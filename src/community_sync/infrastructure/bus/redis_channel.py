"""Realtime channel over Redis Pub/Sub.

Broadcasts are plain PUBLISH on ``<prefix>:<topic>``. Presence lives in the
hash ``<prefix>:<topic>:presence`` (member key -> metadata + last_seen);
every track/untrack publishes a ``presence`` event so subscribers re-read
the hash. Members whose heartbeat is older than the TTL are dropped from
snapshots and pruned.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from community_sync.application.exceptions import BroadcastSendFailed, ChannelDisconnected
from community_sync.application.ports.bus import OnBroadcast, OnPresenceSync, OnStatus
from community_sync.application.ports.clock import Clock, SystemClock
from community_sync.domain.value_objects.enums import ChannelStatus
from community_sync.infrastructure.bus.serializer import (
    deserialize_event,
    deserialize_presence,
    serialize_event,
    serialize_presence,
)

logger = logging.getLogger(__name__)

PRESENCE_EVENT = "presence"


def live_members(
    raw: dict[str, str],
    *,
    now: float,
    ttl: float,
) -> tuple[dict[str, dict[str, Any]], list[str]]:
    """Split a presence hash into (live members, stale keys)."""
    live: dict[str, dict[str, Any]] = {}
    stale: list[str] = []
    for key, value in raw.items():
        try:
            meta, last_seen = deserialize_presence(value)
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            stale.append(key)
            continue
        if now - last_seen >= ttl:
            stale.append(key)
            continue
        live[key] = meta
    return live, stale


class RedisRealtimeChannel:
    """Implements application.ports.bus.RealtimeChannel."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        prefix: str = "community",
        presence_ttl: float = 30.0,
        heartbeat_seconds: float = 10.0,
        reconnect_seconds: float = 2.0,
        broadcast_self: bool = False,
        clock: Clock | None = None,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._presence_ttl = presence_ttl
        self._heartbeat_seconds = heartbeat_seconds
        self._reconnect_seconds = reconnect_seconds
        self._broadcast_self = broadcast_self
        self._clock = clock or SystemClock()

    async def subscribe(
        self,
        topic: str,
        *,
        presence_key: str,
        on_broadcast: OnBroadcast,
        on_presence_sync: OnPresenceSync,
        on_status: OnStatus,
    ) -> RedisChannelSession:
        session = RedisChannelSession(
            self._redis,
            f"{self._prefix}:{topic}",
            presence_key,
            on_broadcast=on_broadcast,
            on_presence_sync=on_presence_sync,
            on_status=on_status,
            presence_ttl=self._presence_ttl,
            heartbeat_seconds=self._heartbeat_seconds,
            reconnect_seconds=self._reconnect_seconds,
            broadcast_self=self._broadcast_self,
            clock=self._clock,
        )
        await session.start()
        return session


class RedisChannelSession:
    """One subscription: listener task + presence heartbeat task."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        presence_key: str,
        *,
        on_broadcast: OnBroadcast,
        on_presence_sync: OnPresenceSync,
        on_status: OnStatus,
        presence_ttl: float,
        heartbeat_seconds: float,
        reconnect_seconds: float,
        broadcast_self: bool,
        clock: Clock,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._presence_hash = f"{channel}:presence"
        self._presence_key = presence_key
        self._on_broadcast = on_broadcast
        self._on_presence_sync = on_presence_sync
        self._on_status = on_status
        self._presence_ttl = presence_ttl
        self._heartbeat_seconds = heartbeat_seconds
        self._reconnect_seconds = reconnect_seconds
        self._broadcast_self = broadcast_self
        self._clock = clock

        self.session_id = uuid.uuid4().hex
        self._tracked: dict[str, Any] | None = None
        self._presence: dict[str, dict[str, Any]] = {}
        self._listener: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._listener = asyncio.create_task(self._listen(), name=f"channel-listener-{self._channel}")
        self._heartbeat = asyncio.create_task(self._beat(), name=f"presence-heartbeat-{self._channel}")
        logger.info("Channel session started on %s", self._channel)

    def presence_state(self) -> dict[str, dict[str, Any]]:
        return {k: dict(v) for k, v in self._presence.items()}

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(event, payload, sender=self.session_id)
        try:
            await self._redis.publish(self._channel, raw)
        except RedisError as exc:
            raise BroadcastSendFailed(str(exc)) from exc

    async def track(self, metadata: dict[str, Any]) -> None:
        self._tracked = dict(metadata)
        try:
            await self._write_presence()
            await self._publish_presence_change()
        except RedisError as exc:
            raise ChannelDisconnected(str(exc)) from exc
        logger.debug("Tracked %s on %s", self._presence_key, self._channel)

    async def untrack(self) -> None:
        if self._tracked is None:
            return
        self._tracked = None
        try:
            await self._redis.hdel(self._presence_hash, self._presence_key)
            await self._publish_presence_change()
        except RedisError as exc:
            raise ChannelDisconnected(str(exc)) from exc

    async def unsubscribe(self) -> None:
        for task in (self._heartbeat, self._listener):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._heartbeat = self._listener = None
        self._presence = {}
        await self._emit_status(ChannelStatus.CLOSED)
        logger.info("Channel session on %s closed", self._channel)

    async def _write_presence(self) -> None:
        if self._tracked is None:
            return
        await self._redis.hset(
            self._presence_hash,
            self._presence_key,
            serialize_presence(self._tracked, self._clock.timestamp()),
        )

    async def _publish_presence_change(self) -> None:
        await self._redis.publish(
            self._channel, serialize_event(PRESENCE_EVENT, {}, sender=self.session_id)
        )

    async def _sync_presence(self) -> None:
        raw = await self._redis.hgetall(self._presence_hash)
        live, stale = live_members(raw, now=self._clock.timestamp(), ttl=self._presence_ttl)
        if stale:
            await self._redis.hdel(self._presence_hash, *stale)
            logger.debug("Pruned %d stale presence entries on %s", len(stale), self._channel)
        self._presence = live
        try:
            await self._on_presence_sync(self.presence_state())
        except Exception:
            logger.exception("Presence sync handler failed")

    async def _emit_status(self, status: ChannelStatus) -> None:
        try:
            await self._on_status(status)
        except Exception:
            logger.exception("Channel status handler failed for %s", status)

    async def _listen(self) -> None:
        while True:
            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self._channel)
                await self._emit_status(ChannelStatus.SUBSCRIBED)
                await self._sync_presence()
                async for message in pubsub.listen():
                    if message["type"] != "message":
                        continue
                    try:
                        await self._dispatch(message["data"])
                    except RedisError:
                        raise
                    except Exception:
                        logger.exception("Error processing channel message")
            except asyncio.CancelledError:
                raise
            except RedisError as exc:
                logger.warning(
                    "Channel %s lost (%s), reconnecting in %.1fs",
                    self._channel,
                    exc,
                    self._reconnect_seconds,
                )
                await self._emit_status(ChannelStatus.CHANNEL_ERROR)
            finally:
                try:
                    await pubsub.aclose()
                except RedisError:
                    logger.debug("Ignoring error while closing pubsub", exc_info=True)
            await asyncio.sleep(self._reconnect_seconds)

    async def _dispatch(self, raw: str | bytes) -> None:
        event, data, sender = deserialize_event(raw)
        if event == PRESENCE_EVENT:
            await self._sync_presence()
            return
        if sender == self.session_id and not self._broadcast_self:
            return
        await self._on_broadcast(event, data)

    async def _beat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            try:
                await self._write_presence()
                await self._sync_presence()
            except RedisError:
                logger.debug("Presence heartbeat failed on %s", self._channel, exc_info=True)
