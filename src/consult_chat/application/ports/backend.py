from __future__ import annotations

from typing import Any, Protocol

from consult_chat.application.dto.message import FallbackSendDTO


class ConsultationBackend(Protocol):
    """Request/response collaborator: consultation metadata, history, fallback send.

    Methods return raw JSON objects; mapping to entities happens in the services.
    """

    async def list_consultations(self, user_id: str) -> list[dict[str, Any]]: ...

    async def fetch_messages(self, consultation_id: str) -> list[dict[str, Any]]: ...

    async def post_message(self, dto: FallbackSendDTO) -> dict[str, Any]: ...
