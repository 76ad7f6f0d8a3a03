from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(
        self, delay: float, callback: Callable[[], Awaitable[None]]
    ) -> Cancellable: ...
