from __future__ import annotations


class BotError(RuntimeError):
    pass


class ValidationError(BotError):
    """Malformed user input. Always recovered in the conversation with a retry prompt."""


class NotAllowedError(BotError):
    """Quota / entitlement denial."""


class StorageUnavailable(BotError):
    pass


class RemoteServiceError(BotError):
    def __init__(self, message: str, *, status: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail
