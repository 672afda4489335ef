from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from consult_chat.domain.value_objects.enums import SenderType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    """Payload of a live `send-message` emit."""

    consultation_id: str
    sender_id: str
    body: str
    sender_name: str | None = None
    sender_type: SenderType = SenderType.CLIENT
    client_msg_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "consultation_id": self.consultation_id,
            "sender_id": self.sender_id,
            "sender_type": self.sender_type.value,
            "message": self.body,
            "sender_name": self.sender_name,
        }
        if self.client_msg_id is not None:
            data["client_msg_id"] = self.client_msg_id
        return data


@dataclass(frozen=True, slots=True)
class FallbackSendDTO:
    """Body of the request/response send used while the relay is unavailable."""

    consultation_id: str
    sender_id: str
    body: str
    sender_type: SenderType = SenderType.CLIENT

    def to_request(self) -> dict[str, Any]:
        return {
            "message": self.body,
            "sender_id": self.sender_id,
            "sender_type": self.sender_type.value,
        }
