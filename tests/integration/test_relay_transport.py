"""aiohttp relay transport against an in-process websocket relay."""
from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from consult_chat.application.exceptions import ConfigurationError, RelayError
from consult_chat.config import Settings
from consult_chat.domain.value_objects.enums import ConnectionState
from consult_chat.infrastructure.relay.aiohttp_transport import AiohttpRelayTransport, build_transport_factory
from consult_chat.services.connection_manager import ConnectionManager
from consult_chat.services.consultation_session import ConsultationSession
from tests.conftest import FakeBackend, make_consultation


class Relay:
    """Minimal relay: greets, records frames, echoes sends back as new-message."""

    def __init__(self, *, greet: bool = True) -> None:
        self.greet = greet
        self.received: list[dict[str, Any]] = []
        self.sockets: list[web.WebSocketResponse] = []

    async def handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        if self.greet:
            await ws.send_json({"event": "connected", "data": {"sid": f"sid-{len(self.sockets)}"}})
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            self.received.append(frame)
            if frame["event"] == "send-message":
                data = frame["data"]
                await ws.send_json(
                    {
                        "event": "new-message",
                        "data": {
                            "id": f"msg-{len(self.received)}",
                            "consultation_id": data["consultation_id"],
                            "sender_id": data["sender_id"],
                            "sender_type": data["sender_type"],
                            "message": data["message"],
                            "created_at": "2024-05-01T12:00:01+00:00",
                            "client_msg_id": data.get("client_msg_id"),
                        },
                    }
                )
                await ws.send_json({"event": "message-sent", "data": {"success": True}})
            elif frame["event"] == "join-consultation":
                await ws.send_json({"event": "joined-consultation", "data": {"consultation_id": frame["data"]}})
        return ws


async def _start(relay: Relay) -> TestServer:
    app = web.Application()
    app.router.add_get("/relay", relay.handler)
    server = TestServer(app)
    await server.start_server()
    return server


async def _wait_for(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_connect_returns_greeting_sid_and_exchanges_frames():
    relay = Relay()
    server = await _start(relay)
    transport = AiohttpRelayTransport()
    try:
        sid = await transport.connect(str(server.make_url("/relay")), timeout=5)
        await transport.send("join-consultation", "c1")

        events = transport.events()
        event, data = await asyncio.wait_for(events.__anext__(), timeout=3)
        await events.aclose()
    finally:
        await transport.close()
        await server.close()

    assert sid == "sid-1"
    assert relay.received == [{"event": "join-consultation", "data": "c1"}]
    assert (event, data) == ("joined-consultation", {"consultation_id": "c1"})


@pytest.mark.asyncio
async def test_missing_greeting_falls_back_to_local_id(monkeypatch):
    monkeypatch.setattr("consult_chat.infrastructure.relay.aiohttp_transport.GREETING_TIMEOUT_SECONDS", 0.1)
    relay = Relay(greet=False)
    server = await _start(relay)
    transport = AiohttpRelayTransport()
    try:
        sid = await transport.connect(str(server.make_url("/relay")), timeout=5)
    finally:
        await transport.close()
        await server.close()

    assert sid
    assert not sid.startswith("sid-")


@pytest.mark.asyncio
async def test_connect_failure_raises_relay_error():
    relay = Relay()
    server = await _start(relay)
    url = str(server.make_url("/missing"))
    transport = AiohttpRelayTransport()
    try:
        with pytest.raises(RelayError):
            await transport.connect(url, timeout=5)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_send_without_connection_raises():
    with pytest.raises(RelayError):
        await AiohttpRelayTransport().send("typing-stop", {"consultation_id": "c1"})


def test_factory_rejects_unsupported_transport_preference():
    with pytest.raises(ConfigurationError):
        build_transport_factory(Settings(RELAY_TRANSPORTS=["polling"]))


@pytest.mark.asyncio
async def test_session_round_trip_over_real_socket():
    relay = Relay()
    server = await _start(relay)
    connection = ConnectionManager(build_transport_factory(Settings()), reconnect_delay=0.05)
    session = ConsultationSession(connection, FakeBackend(), user_id="u1", typing_expiry_seconds=0)
    try:
        await session.open(str(server.make_url("/relay")))
        await session.select(make_consultation())
        await session.send("Hello")

        await _wait_for(lambda: not session.store.pending() and not session.sending)
        live = [m for m in session.messages if m.id != "initial"]
        assert len(live) == 1
        assert live[0].id.startswith("msg-")
        assert live[0].body == "Hello"

        await session.close()
        assert connection.state == ConnectionState.DISCONNECTED
        await _wait_for(lambda: len(relay.received) == 3)
        assert [f["event"] for f in relay.received] == [
            "join-consultation",
            "send-message",
            "leave-consultation",
        ]
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_manager_reconnects_when_relay_drops_socket():
    relay = Relay()
    server = await _start(relay)
    connection = ConnectionManager(build_transport_factory(Settings()), reconnect_delay=0.05)
    try:
        await connection.open(str(server.make_url("/relay")))
        await relay.sockets[0].close()

        await _wait_for(lambda: len(relay.sockets) == 2 and connection.state == ConnectionState.CONNECTED)
        assert connection.connection_id == "sid-2"
    finally:
        await connection.close()
        await server.close()
