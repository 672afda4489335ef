"""Websocket relay transport built on aiohttp."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Callable

import aiohttp

from consult_chat.application.exceptions import ConfigurationError, RelayError
from consult_chat.config import Settings
from consult_chat.domain.value_objects.enums import RelayEvent
from consult_chat.infrastructure.relay.protocol import ConnectedPayload
from consult_chat.infrastructure.relay.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)

GREETING_TIMEOUT_SECONDS = 2.0


class AiohttpRelayTransport:
    """Implements application.ports.relay.RelayTransport."""

    def __init__(
        self,
        *,
        heartbeat: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._heartbeat = heartbeat
        self._headers = headers or {}
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._pending: list[tuple[str, Any]] = []

    async def connect(self, url: str, *, timeout: float) -> str:
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, connect=timeout),
        )
        try:
            self._ws = await self._session.ws_connect(
                url,
                heartbeat=self._heartbeat,
                headers=self._headers,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            await self._session.close()
            self._session = None
            raise RelayError(f"connect to {url} failed: {exc!r}") from exc

        return await self._read_greeting()

    async def _read_greeting(self) -> str:
        # The relay announces the connection id first; anything else is kept
        # and replayed through events().
        assert self._ws is not None
        try:
            msg = await self._ws.receive(timeout=GREETING_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            return uuid.uuid4().hex
        if msg.type != aiohttp.WSMsgType.TEXT:
            return uuid.uuid4().hex
        try:
            event, data = deserialize_event(msg.data)
        except RelayError:
            logger.warning("Dropping malformed greeting frame")
            return uuid.uuid4().hex
        if event == RelayEvent.CONNECTED and isinstance(data, dict) and "sid" in data:
            return ConnectedPayload.model_validate(data).sid
        self._pending.append((event, data))
        return uuid.uuid4().hex

    async def send(self, event: str, data: Any) -> None:
        if self._ws is None or self._ws.closed:
            raise RelayError("relay connection is not open")
        try:
            await self._ws.send_str(serialize_event(event, data))
        except (aiohttp.ClientError, ConnectionError) as exc:
            raise RelayError(f"send {event} failed: {exc!r}") from exc

    async def events(self) -> AsyncIterator[tuple[str, Any]]:
        while self._pending:
            yield self._pending.pop(0)
        if self._ws is None:
            return
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    yield deserialize_event(msg.data)
                except RelayError:
                    logger.warning("Dropping malformed relay frame")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise RelayError(f"relay connection error: {self._ws.exception()!r}")

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None


def build_transport_factory(config: Settings) -> Callable[[], AiohttpRelayTransport]:
    """Return a zero-arg factory producing a fresh transport per connection attempt."""
    if "websocket" not in config.RELAY_TRANSPORTS:
        raise ConfigurationError(
            f"unsupported relay transports {config.RELAY_TRANSPORTS!r}; only 'websocket' is available"
        )

    def factory() -> AiohttpRelayTransport:
        return AiohttpRelayTransport(heartbeat=config.RELAY_HEARTBEAT_SECONDS or None)

    return factory
