from __future__ import annotations

import logging
import sys
from typing import TextIO

from community_sync.domain.entities.message import ChatMessage

logger = logging.getLogger(__name__)


class LoggingNotifier:
    def notify(self, message: ChatMessage) -> None:
        logger.info("New message from %s", message.author)


class TerminalBellNotifier:
    """Rings the terminal bell once per remote message."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def notify(self, message: ChatMessage) -> None:
        try:
            self._stream.write("\a")
            self._stream.flush()
        except OSError:
            logger.debug("Failed to ring bell for %s", message.id, exc_info=True)
