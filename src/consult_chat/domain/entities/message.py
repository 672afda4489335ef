from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from consult_chat.domain.value_objects.ids import is_temp_id


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    consultation_id: str
    sender_id: str
    sender_type: str
    body: str
    created_at: datetime
    sender_name: str | None = None
    client_msg_id: str | None = None

    @property
    def is_optimistic(self) -> bool:
        """True while the message still carries a locally generated placeholder id."""
        return is_temp_id(self.id)

    def with_sender_name(self, sender_name: str) -> Message:
        return replace(self, sender_name=sender_name)
