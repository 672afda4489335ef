"""Relay frame and payload models."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict

from consult_chat.domain.entities.message import Message


class RelayEnvelope(BaseModel):
    """One JSON text frame in either direction."""

    event: str
    data: Any = None


class MessagePayload(BaseModel):
    """A confirmed message as the relay and the backend serialize it."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    consultation_id: str
    sender_id: str
    sender_type: str
    message: str
    created_at: datetime
    sender_name: str | None = None
    client_msg_id: str | None = None

    def to_entity(self) -> Message:
        return Message(
            id=self.id,
            consultation_id=self.consultation_id,
            sender_id=self.sender_id,
            sender_type=self.sender_type,
            body=self.message,
            created_at=as_utc(self.created_at),
            sender_name=self.sender_name,
            client_msg_id=self.client_msg_id,
        )


def as_utc(value: datetime) -> datetime:
    # Naive timestamps from the backend are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TypingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    consultation_id: str
    user_name: str | None = None


class ErrorPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: str = "Unknown error"


class ConnectedPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    sid: str
