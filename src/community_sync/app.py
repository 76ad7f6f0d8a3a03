from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine

from community_sync.application.ports.media import MediaHandle
from community_sync.application.ports.notifier import Notifier
from community_sync.application.ports.scheduler import Scheduler
from community_sync.config import Settings, settings as default_settings
from community_sync.infrastructure.bus.redis_channel import RedisRealtimeChannel
from community_sync.infrastructure.db.repositories.message import SqlAlchemyMessageStore
from community_sync.infrastructure.db.session import build_engine, build_session_factory
from community_sync.infrastructure.notify import LoggingNotifier
from community_sync.infrastructure.scheduling import AsyncioScheduler
from community_sync.infrastructure.storage.json_kv import JsonFileStorage
from community_sync.services.chat_synchronizer import ChatObserver, ChatSynchronizer
from community_sync.services.identity import load_or_create_identity
from community_sync.services.stream_reconnector import StreamReconnector

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    settings: Settings
    identity: str
    redis: aioredis.Redis
    engine: AsyncEngine
    synchronizer: ChatSynchronizer


@asynccontextmanager
async def open_runtime(
    settings: Settings | None = None,
    *,
    notifier: Notifier | None = None,
    observer: ChatObserver | None = None,
) -> AsyncIterator[Runtime]:
    """Startup / shutdown lifecycle for the chat core."""
    settings = settings or default_settings
    identity = load_or_create_identity(
        JsonFileStorage(settings.IDENTITY_STORE_PATH),
        key=settings.IDENTITY_KEY,
    )

    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    logger.info("Redis connection pool created")
    engine = build_engine(settings)

    channel = RedisRealtimeChannel(
        redis,
        prefix=settings.CHANNEL_PREFIX,
        presence_ttl=settings.PRESENCE_TTL_SECONDS,
        heartbeat_seconds=settings.PRESENCE_HEARTBEAT_SECONDS,
        reconnect_seconds=settings.CHANNEL_RECONNECT_SECONDS,
        broadcast_self=settings.BROADCAST_SELF,
    )
    synchronizer = ChatSynchronizer(
        SqlAlchemyMessageStore(build_session_factory(engine)),
        channel,
        identity,
        topic=settings.CHAT_TOPIC,
        event=settings.CHAT_BROADCAST_EVENT,
        history_limit=settings.HISTORY_LIMIT,
        max_length=settings.MAX_MESSAGE_LENGTH,
        notifier=notifier or LoggingNotifier(),
        observer=observer,
    )

    try:
        yield Runtime(
            settings=settings,
            identity=identity,
            redis=redis,
            engine=engine,
            synchronizer=synchronizer,
        )
    finally:
        await redis.aclose()
        await engine.dispose()
        logger.info("Redis connection pool and database engine closed")


def build_reconnector(
    media: MediaHandle,
    settings: Settings | None = None,
    *,
    scheduler: Scheduler | None = None,
) -> StreamReconnector:
    settings = settings or default_settings
    return StreamReconnector(
        media,
        scheduler or AsyncioScheduler(),
        settings.STREAM_SOURCES,
        max_attempts=settings.STREAM_MAX_ATTEMPTS,
        base_delay=settings.STREAM_BASE_DELAY_SECONDS,
        volume=settings.STREAM_DEFAULT_VOLUME,
    )
