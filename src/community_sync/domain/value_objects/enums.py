from __future__ import annotations

from enum import StrEnum


class PlaybackStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    RECONNECTING = "reconnecting"


class StreamSource(StrEnum):
    CODE = "code"
    RAIN = "rain"


class ChannelStatus(StrEnum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"
