"""Keeps a live audio stream in the state the user last asked for.

Transport errors while the user wants playback schedule a reload with
exponential backoff (base * 2**attempt). After ``max_attempts`` retries the
reconnector gives up and settles at IDLE; the user has to press play again.
Every explicit user action cancels a pending retry before touching state.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Mapping

from community_sync.application.exceptions import (
    PlaybackStartError,
    StreamTransportError,
    ValidationError,
)
from community_sync.application.ports.media import MediaHandle
from community_sync.application.ports.scheduler import Cancellable, Scheduler
from community_sync.domain.entities.playback import StreamPlaybackState
from community_sync.domain.value_objects.enums import PlaybackStatus, StreamSource

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
BASE_DELAY_SECONDS = 2.0

_ACTIVE = (PlaybackStatus.LOADING, PlaybackStatus.PLAYING)


class StreamReconnector:
    def __init__(
        self,
        media: MediaHandle,
        scheduler: Scheduler,
        sources: Mapping[str, str],
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
        volume: float = 0.7,
        source: StreamSource = StreamSource.CODE,
    ) -> None:
        missing = [s.value for s in StreamSource if s.value not in sources]
        if missing:
            raise ValidationError(f"no stream url for: {', '.join(missing)}")

        self._media = media
        self._scheduler = scheduler
        self._sources = dict(sources)
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._state = StreamPlaybackState(volume=_clamp(volume), active_source=source)
        self._pending: Cancellable | None = None
        self._starting = False

        self._media.load(self._url())
        self._media.set_volume(self._state.effective_volume)

    @property
    def state(self) -> StreamPlaybackState:
        return self.snapshot()

    def snapshot(self) -> StreamPlaybackState:
        return dataclasses.replace(self._state)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def play(self) -> None:
        """Start playback. A start failure is raised, never retried."""
        self._cancel_pending()
        state = self._state
        state.intended_playing = True
        state.reconnect_attempt = 0
        state.status = PlaybackStatus.LOADING

        self._starting = True
        try:
            await self._media.play()
        except Exception as exc:
            logger.warning("Failed to start stream %s: %s", state.active_source, exc)
            self._cancel_pending()
            state.status = PlaybackStatus.IDLE
            state.intended_playing = False
            state.reconnect_attempt = 0
            raise PlaybackStartError(f"could not start {state.active_source}") from exc
        finally:
            self._starting = False

        if state.status == PlaybackStatus.LOADING and state.intended_playing:
            state.status = PlaybackStatus.PLAYING

    def pause(self) -> None:
        self._cancel_pending()
        state = self._state
        state.intended_playing = False
        self._media.pause()
        if state.status in (*_ACTIVE, PlaybackStatus.RECONNECTING):
            state.status = PlaybackStatus.PAUSED

    def stop(self) -> None:
        """Stop, rewind and reload the source to drop broken buffering state."""
        self._cancel_pending()
        state = self._state
        state.intended_playing = False
        state.reconnect_attempt = 0
        self._media.pause()
        self._media.seek(0)
        self._media.load(self._url())
        state.status = PlaybackStatus.STOPPED

    def switch_source(self, source: StreamSource | str) -> None:
        """Change station. Never resumes playback on its own."""
        try:
            target = StreamSource(source)
        except ValueError:
            raise ValidationError(f"unknown stream source: {source}") from None

        self._cancel_pending()
        state = self._state
        state.intended_playing = False
        state.reconnect_attempt = 0
        self._media.pause()
        self._media.seek(0)
        state.active_source = target
        self._media.load(self._url())
        state.status = PlaybackStatus.IDLE
        logger.info("Switched stream to %s", target)

    def set_volume(self, volume: float) -> None:
        self._state.volume = _clamp(volume)
        self._media.set_volume(self._state.effective_volume)

    def set_muted(self, muted: bool) -> None:
        self._state.muted = muted
        self._media.set_volume(self._state.effective_volume)

    def toggle_mute(self) -> bool:
        self.set_muted(not self._state.muted)
        return self._state.muted

    def close(self) -> None:
        self._cancel_pending()
        self._state.intended_playing = False
        self._media.pause()

    # ------------------------------------------------------------------
    # Media events
    # ------------------------------------------------------------------

    def on_playing(self) -> None:
        """The element reports audio flowing again."""
        state = self._state
        if not state.intended_playing:
            return
        if state.reconnect_attempt:
            logger.info("Stream %s resumed after %d attempt(s)", state.active_source, state.reconnect_attempt)
        state.status = PlaybackStatus.PLAYING
        state.reconnect_attempt = 0

    def on_stalled(self) -> None:
        self.handle_error(StreamTransportError("stream stalled"))

    def handle_error(self, error: BaseException | None = None) -> None:
        """Turn a transport error into a backoff retry, or give up.

        The first error plus ``max_attempts`` failed retries (2, 4, 8, 16, 32s
        with the defaults) settle at IDLE: giving up happens on the sixth error.
        Errors raised while a user-initiated start is in flight belong to
        ``play()`` and never schedule a retry.
        """
        state = self._state
        if self._starting:
            logger.debug("Error during user start, left to play(): %s", error)
            return
        if self._pending is not None:
            logger.debug("Retry already pending, ignoring error: %s", error)
            return

        if not state.intended_playing:
            if state.status in _ACTIVE:
                state.status = PlaybackStatus.IDLE
            return

        if state.reconnect_attempt >= self._max_attempts:
            logger.warning(
                "Stream %s unreachable after %d attempts; waiting for user",
                state.active_source,
                state.reconnect_attempt,
            )
            state.status = PlaybackStatus.IDLE
            state.intended_playing = False
            return

        delay = self._base_delay * (2 ** state.reconnect_attempt)
        state.reconnect_attempt += 1
        state.status = PlaybackStatus.RECONNECTING
        logger.info(
            "Stream error (%s); retry %d/%d in %.1fs",
            error,
            state.reconnect_attempt,
            self._max_attempts,
            delay,
        )
        self._pending = self._scheduler.call_later(delay, self._retry)

    async def _retry(self) -> None:
        self._pending = None
        state = self._state
        if not state.intended_playing or state.status != PlaybackStatus.RECONNECTING:
            return

        state.status = PlaybackStatus.LOADING
        self._media.load(self._url())
        try:
            await self._media.play()
        except Exception as exc:
            if state.intended_playing and state.status == PlaybackStatus.LOADING:
                self.handle_error(exc)
            return

        if state.intended_playing and state.status == PlaybackStatus.LOADING:
            self.on_playing()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _url(self) -> str:
        return self._sources[self._state.active_source.value]


def _clamp(volume: float) -> float:
    return min(1.0, max(0.0, volume))
