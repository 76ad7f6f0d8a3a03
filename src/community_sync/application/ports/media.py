from __future__ import annotations

from typing import Protocol


class MediaHandle(Protocol):
    """A single streaming audio element."""

    async def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, position: float) -> None: ...

    def load(self, url: str) -> None:
        """Point the element at ``url`` and drop any buffered state."""
        ...

    def set_volume(self, volume: float) -> None: ...
