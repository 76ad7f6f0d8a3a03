from __future__ import annotations

from dataclasses import dataclass

from community_sync.domain.value_objects.enums import PlaybackStatus, StreamSource


@dataclass(slots=True)
class StreamPlaybackState:
    status: PlaybackStatus = PlaybackStatus.IDLE
    volume: float = 0.7
    muted: bool = False
    active_source: StreamSource = StreamSource.CODE
    reconnect_attempt: int = 0
    intended_playing: bool = False

    @property
    def effective_volume(self) -> float:
        return 0.0 if self.muted else self.volume
