from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from consult_chat.domain.entities.consultation import Consultation
from consult_chat.domain.entities.message import Message
from consult_chat.infrastructure.relay.protocol import MessagePayload, as_utc


class ConsultationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    client_name: str
    client_email: str
    status: str
    created_at: datetime
    message: str = ""
    client_id: str | None = None
    client_phone: str | None = None
    designer_id: str | None = None
    designer_name: str | None = None
    project_type: str | None = None
    budget: str | None = None
    timeline: str | None = None
    preferred_date: str | None = None
    preferred_time: str | None = None


def consultation_from_api(raw: dict[str, Any]) -> Consultation:
    payload = ConsultationPayload.model_validate(raw)
    return Consultation(**{**payload.model_dump(), "created_at": as_utc(payload.created_at)})


def message_from_api(raw: dict[str, Any], consultation: Consultation | None = None) -> Message:
    """Parse a confirmed message, labelling the sender from consultation metadata if needed."""
    msg = MessagePayload.model_validate(raw).to_entity()
    if consultation is not None and not msg.sender_name:
        msg = msg.with_sender_name(consultation.label_for(msg.sender_type))
    return msg
