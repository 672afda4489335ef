"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import pytest

from consult_chat.application.dto.message import FallbackSendDTO
from consult_chat.application.exceptions import BackendError, RelayError
from consult_chat.domain.entities.consultation import Consultation
from consult_chat.domain.entities.message import Message
from consult_chat.domain.value_objects.enums import SenderType
from consult_chat.services.connection_manager import ConnectionManager

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

_real_sleep = asyncio.sleep
_CLOSE = object()


async def settle(rounds: int = 20) -> None:
    """Let background tasks (reader, reconnect) run."""
    for _ in range(rounds):
        await _real_sleep(0)


def make_consultation(
    *,
    consultation_id: str = "c1",
    client_name: str = "Sara Client",
    designer_name: str | None = "Dana Designer",
    message: str = "I need help with my living room",
    created_at: datetime = T0 - timedelta(days=1),
) -> Consultation:
    return Consultation(
        id=consultation_id,
        client_name=client_name,
        client_email="sara@example.com",
        status="confirmed",
        created_at=created_at,
        message=message,
        client_id="u1",
        designer_id="d1",
        designer_name=designer_name,
        project_type="living room",
        budget="5000-10000",
        timeline="1-3 months",
    )


def consultation_json(consultation: Consultation) -> dict[str, Any]:
    return {
        "id": consultation.id,
        "client_name": consultation.client_name,
        "client_email": consultation.client_email,
        "client_phone": None,
        "status": consultation.status,
        "preferred_date": "2024-05-02",
        "preferred_time": "10:00",
        "project_type": consultation.project_type,
        "budget": consultation.budget,
        "timeline": consultation.timeline,
        "message": consultation.message,
        "created_at": consultation.created_at.isoformat(),
        "designer_name": consultation.designer_name,
        "designer_id": consultation.designer_id,
    }


def make_message(
    *,
    message_id: str = "msg-1",
    consultation_id: str = "c1",
    sender_id: str = "u1",
    sender_type: str = SenderType.CLIENT,
    body: str = "Hello",
    created_at: datetime = T0,
    client_msg_id: str | None = None,
) -> Message:
    return Message(
        id=message_id,
        consultation_id=consultation_id,
        sender_id=sender_id,
        sender_type=sender_type,
        body=body,
        created_at=created_at,
        client_msg_id=client_msg_id,
    )


def message_json(message: Message) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": message.id,
        "consultation_id": message.consultation_id,
        "sender_id": message.sender_id,
        "sender_type": message.sender_type,
        "message": message.body,
        "created_at": message.created_at.isoformat(),
    }
    if message.client_msg_id is not None:
        data["client_msg_id"] = message.client_msg_id
    return data


@dataclass
class FakeClock:
    current: datetime = T0
    ticks: float = 1000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.ticks

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.ticks += seconds


class FakeTransport:
    """In-memory relay connection; inbound frames are pushed by the test."""

    def __init__(self, relay: FakeRelay) -> None:
        self._relay = relay
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False
        self.broken = False

    async def connect(self, url: str, *, timeout: float) -> str:
        self._relay.connects += 1
        self._relay.urls.append(url)
        if self._relay.fail_connects > 0:
            self._relay.fail_connects -= 1
            raise RelayError("connection refused")
        return f"sid-{self._relay.connects}"

    async def send(self, event: str, data: Any) -> None:
        if self.broken or self.closed:
            raise RelayError("broken pipe")
        self._relay.sent.append((event, data))

    async def events(self) -> AsyncIterator[tuple[str, Any]]:
        while True:
            item = await self._inbox.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def push(self, event: str, data: Any) -> None:
        self._inbox.put_nowait((event, data))

    def drop(self) -> None:
        self._inbox.put_nowait(RelayError("connection reset"))


@dataclass
class FakeRelay:
    fail_connects: int = 0
    connects: int = 0
    urls: list[str] = field(default_factory=list)
    sent: list[tuple[str, Any]] = field(default_factory=list)
    transports: list[FakeTransport] = field(default_factory=list)

    def factory(self) -> FakeTransport:
        transport = FakeTransport(self)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]

    def push(self, event: str, data: Any) -> None:
        self.current.push(event, data)

    def sent_events(self) -> list[str]:
        return [event for event, _ in self.sent]


@dataclass
class FakeBackend:
    consultations: list[dict[str, Any]] = field(default_factory=list)
    history: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    post_response: dict[str, Any] = field(default_factory=dict)
    post_error: BackendError | None = None
    history_error: BackendError | None = None
    posted: list[FallbackSendDTO] = field(default_factory=list)

    async def list_consultations(self, user_id: str) -> list[dict[str, Any]]:
        return list(self.consultations)

    async def fetch_messages(self, consultation_id: str) -> list[dict[str, Any]]:
        if self.history_error is not None:
            raise self.history_error
        return list(self.history.get(consultation_id, []))

    async def post_message(self, dto: FallbackSendDTO) -> dict[str, Any]:
        self.posted.append(dto)
        if self.post_error is not None:
            raise self.post_error
        return dict(self.post_response)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def connection(relay: FakeRelay) -> ConnectionManager:
    return ConnectionManager(relay.factory, reconnect_attempts=5, reconnect_delay=0, connect_timeout=1.0)
