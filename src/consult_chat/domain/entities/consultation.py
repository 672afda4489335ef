from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from consult_chat.domain.entities.message import Message
from consult_chat.domain.value_objects.enums import SenderType
from consult_chat.domain.value_objects.ids import INITIAL_MESSAGE_ID


@dataclass(frozen=True, slots=True)
class Consultation:
    """Read-only booking context used to label messages and name channels."""

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

    def label_for(self, sender_type: str) -> str:
        if sender_type == SenderType.CLIENT:
            return self.client_name
        return self.designer_name or "Designer"

    def initial_message(self) -> Message:
        """The booking note, shown as the first message of the conversation."""
        return Message(
            id=INITIAL_MESSAGE_ID,
            consultation_id=self.id,
            sender_id=self.client_email,
            sender_type=SenderType.CLIENT,
            body=self.message,
            created_at=self.created_at,
            sender_name=self.client_name,
        )
