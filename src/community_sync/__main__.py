"""Entrypoint: python -m community_sync

Headless chat client: prints the feed and online count, sends each line
typed on stdin.
"""
from __future__ import annotations

import asyncio
import logging
import sys

from community_sync.app import open_runtime
from community_sync.application.exceptions import HistoryLoadError, SendFailed, ValidationError
from community_sync.domain.entities.message import ChatMessage
from community_sync.domain.entities.presence import PresenceSnapshot
from community_sync.infrastructure.notify import TerminalBellNotifier

logger = logging.getLogger("community_sync")


class _ConsoleObserver:
    def message_added(self, message: ChatMessage) -> None:
        print(f"[{message.created_at:%H:%M}] {message.author}: {message.body}")

    def presence_changed(self, snapshot: PresenceSnapshot) -> None:
        print(f"-- {snapshot.count} online")


async def run_chat() -> None:
    async with open_runtime(
        notifier=TerminalBellNotifier(),
        observer=_ConsoleObserver(),
    ) as runtime:
        sync = runtime.synchronizer
        print(f"-- chatting as {runtime.identity}")
        try:
            await sync.load_history()
        except HistoryLoadError:
            logger.warning("Starting with an empty history")

        async with await sync.subscribe():
            loop = asyncio.get_running_loop()
            while True:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                try:
                    await sync.send(line)
                except ValidationError:
                    continue
                except SendFailed as exc:
                    print(f"-- not sent, try again: {exc.draft}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run_chat())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
