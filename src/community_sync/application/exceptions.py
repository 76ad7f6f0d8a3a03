from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(AppError):
    pass


class EmptyMessageError(ValidationError):
    pass


class MessageTooLongError(ValidationError):
    pass


class StoreError(AppError):
    """Opaque failure from the durable message store."""


class HistoryLoadError(AppError):
    pass


class SendFailed(AppError):
    """Durable insert failed; ``draft`` is the text to hand back to the composer."""

    def __init__(self, detail: str = "", *, draft: str = "") -> None:
        self.draft = draft
        super().__init__(detail)


class BroadcastSendFailed(AppError):
    pass


class ChannelDisconnected(AppError):
    pass


class SubscriptionError(AppError):
    pass


class PlaybackStartError(AppError):
    pass


class StreamTransportError(AppError):
    pass
