from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ConfigurationError(AppError):
    pass


class NotConnectedError(AppError):
    pass


class RelayError(AppError):
    """Transport-level failure talking to the relay."""


class BackendError(AppError):
    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(detail)


class SendFailedError(AppError):
    """A send could not be delivered; `body` is the text to hand back to the user."""

    def __init__(self, detail: str, body: str) -> None:
        self.body = body
        super().__init__(detail)
