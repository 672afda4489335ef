"""Owns the single persistent relay connection and its reconnection policy."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping

from consult_chat.application.exceptions import NotConnectedError, RelayError
from consult_chat.application.ports.relay import RelayTransport, RelayTransportFactory
from consult_chat.domain.value_objects.enums import ConnectionState

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]
StateListener = Callable[[ConnectionState], None]


class ConnectionManager:
    """One relay connection per owning view.

    Inbound events are dispatched through a handler table looked up when the
    event fires, so `bind` from a newer caller takes effect on the live
    connection without reopening it.
    """

    def __init__(
        self,
        transport_factory: RelayTransportFactory,
        *,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        connect_timeout: float = 20.0,
    ) -> None:
        self._transport_factory = transport_factory
        self._reconnect_attempts = reconnect_attempts
        self._reconnect_delay = reconnect_delay
        self._connect_timeout = connect_timeout

        self._state = ConnectionState.DISCONNECTED
        self._endpoint: str | None = None
        self._transport: RelayTransport | None = None
        self._connection_id: str | None = None
        self._reader: asyncio.Task[None] | None = None
        self._reconnector: asyncio.Task[None] | None = None
        self._handlers: dict[str, EventHandler] = {}
        self._state_listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def connection_id(self) -> str | None:
        return self._connection_id

    # -- subscribers -------------------------------------------------------

    def bind(self, handlers: Mapping[str, EventHandler]) -> None:
        """Replace the whole handler table."""
        self._handlers = dict(handlers)

    def on(self, event: str, handler: EventHandler | None) -> None:
        if handler is None:
            self._handlers.pop(event, None)
        else:
            self._handlers[event] = handler

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return remove

    # -- lifecycle ---------------------------------------------------------

    async def open(self, endpoint: str) -> str | None:
        """Connect to the relay; a no-op while a connection is live or being retried.

        Returns the connection id, or None if the first attempt failed and
        reconnection has been scheduled.
        """
        if self._state in (
            ConnectionState.CONNECTED,
            ConnectionState.CONNECTING,
            ConnectionState.RECONNECTING,
        ):
            return self._connection_id

        self._endpoint = endpoint
        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._connect_once()
        except RelayError as exc:
            logger.warning("Relay connect failed: %s", exc.detail)
            self._start_reconnect()
            return None
        return self._connection_id

    async def close(self) -> None:
        tasks = [t for t in (self._reconnector, self._reader) if t is not None]
        self._reconnector = None
        self._reader = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._drop_transport()
        self._connection_id = None
        if self._state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
            logger.info("Relay connection closed")

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- outbound ----------------------------------------------------------

    async def emit(self, event: str, data: Any) -> None:
        if not self.connected or self._transport is None:
            raise NotConnectedError(f"cannot emit {event}: relay is {self._state}")
        logger.debug("-> %s %r", event, data)
        try:
            await self._transport.send(event, data)
        except RelayError:
            self._on_transport_lost()
            raise

    # -- internals ---------------------------------------------------------

    async def _connect_once(self) -> None:
        assert self._endpoint is not None
        transport = self._transport_factory()
        self._connection_id = await transport.connect(self._endpoint, timeout=self._connect_timeout)
        self._transport = transport
        self._reader = asyncio.create_task(self._read_loop(transport), name="relay-reader")
        logger.info("Relay connected: %s (id=%s)", self._endpoint, self._connection_id)
        self._set_state(ConnectionState.CONNECTED)

    async def _read_loop(self, transport: RelayTransport) -> None:
        try:
            async for event, data in transport.events():
                self._dispatch(event, data)
            logger.warning("Relay closed the connection")
        except RelayError as exc:
            logger.warning("Relay transport failed: %s", exc.detail)
        except Exception:
            logger.exception("Relay reader crashed")
        if self._transport is transport:
            self._reader = None
            self._on_transport_lost()

    def _dispatch(self, event: str, data: Any) -> None:
        logger.debug("<- %s %r", event, data)
        handler = self._handlers.get(event)
        if handler is None:
            return
        try:
            handler(data)
        except Exception:
            logger.exception("Handler for %s failed", event)

    def _on_transport_lost(self) -> None:
        if self._state != ConnectionState.CONNECTED:
            return
        self._start_reconnect()

    def _start_reconnect(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnector = asyncio.create_task(self._reconnect_loop(), name="relay-reconnect")

    async def _reconnect_loop(self) -> None:
        await self._drop_transport()
        for attempt in range(1, self._reconnect_attempts + 1):
            await asyncio.sleep(self._reconnect_delay)
            logger.warning("Relay reconnection attempt %d/%d", attempt, self._reconnect_attempts)
            try:
                await self._connect_once()
            except RelayError as exc:
                logger.warning("Relay reconnection attempt %d failed: %s", attempt, exc.detail)
                continue
            self._reconnector = None
            return
        self._reconnector = None
        logger.error("Relay unreachable after %d attempts", self._reconnect_attempts)
        self._set_state(ConnectionState.FAILED)

    async def _drop_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.close()
        except RelayError:
            logger.debug("Ignoring error while closing relay transport", exc_info=True)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Connection state listener failed")
