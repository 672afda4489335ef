from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class RelayTransport(Protocol):
    """One persistent bidirectional connection to the message relay.

    `connect` returns the connection identifier. `events` yields
    `(event, data)` pairs until the connection ends; it returns normally when
    the peer closes and raises `RelayError` on transport failure.
    """

    async def connect(self, url: str, *, timeout: float) -> str: ...

    async def send(self, event: str, data: Any) -> None: ...

    def events(self) -> AsyncIterator[tuple[str, Any]]: ...

    async def close(self) -> None: ...


class RelayTransportFactory(Protocol):
    def __call__(self) -> RelayTransport: ...
