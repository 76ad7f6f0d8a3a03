from __future__ import annotations

import asyncio

import pytest

from community_sync.app import build_reconnector
from community_sync.config import Settings
from community_sync.domain.value_objects.enums import PlaybackStatus
from community_sync.infrastructure.notify import TerminalBellNotifier
from community_sync.infrastructure.scheduling import AsyncioScheduler
from tests.conftest import make_message


def test_settings_defaults():
    s = Settings()  # type: ignore[call-arg]

    assert s.HISTORY_LIMIT == 50
    assert s.STREAM_MAX_ATTEMPTS == 5
    assert set(s.STREAM_SOURCES) == {"code", "rain"}
    assert s.database_url.startswith("postgresql+asyncpg://community:")


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_callback_after_delay():
    scheduler = AsyncioScheduler()
    fired = asyncio.Event()

    async def callback() -> None:
        fired.set()

    scheduler.call_later(0.01, callback)

    await asyncio.wait_for(fired.wait(), timeout=1)


@pytest.mark.asyncio
async def test_asyncio_scheduler_cancel_prevents_callback():
    scheduler = AsyncioScheduler()
    calls: list[int] = []

    async def callback() -> None:
        calls.append(1)

    handle = scheduler.call_later(0.01, callback)
    handle.cancel()
    await asyncio.sleep(0.05)

    assert calls == []


@pytest.mark.asyncio
async def test_reconnector_retries_on_real_timer(media):
    settings = Settings(STREAM_BASE_DELAY_SECONDS=0.01)  # type: ignore[call-arg]
    reconnector = build_reconnector(media, settings)
    await reconnector.play()

    reconnector.handle_error()
    assert reconnector.state.status == PlaybackStatus.RECONNECTING
    for _ in range(50):
        if reconnector.state.status == PlaybackStatus.PLAYING:
            break
        await asyncio.sleep(0.01)

    assert reconnector.state.status == PlaybackStatus.PLAYING
    assert reconnector.state.reconnect_attempt == 0


def test_terminal_bell_notifier_writes_bell():
    class Sink:
        def __init__(self) -> None:
            self.data = ""

        def write(self, s: str) -> None:
            self.data += s

        def flush(self) -> None:
            pass

    sink = Sink()
    TerminalBellNotifier(sink).notify(make_message())  # type: ignore[arg-type]

    assert sink.data == "\a"
