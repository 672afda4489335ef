from __future__ import annotations

from dataclasses import dataclass

from consult_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of one user submit, as the view needs it."""

    via: str  # relay | fallback
    message: Message | None = None
    error: str | None = None
    restored_input: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
