from __future__ import annotations

import logging
from typing import Any

from consult_chat.application.dto.message import FallbackSendDTO
from consult_chat.application.exceptions import BackendError, SendFailedError
from consult_chat.application.ports.backend import ConsultationBackend
from consult_chat.application.ports.clock import Clock, SystemClock
from consult_chat.domain.entities.consultation import Consultation
from consult_chat.domain.entities.message import Message
from consult_chat.domain.value_objects.ids import new_temp_id
from consult_chat.infrastructure.http.mappers import message_from_api

logger = logging.getLogger(__name__)


class FallbackSender:
    """Request/response send used while the relay connection is not live."""

    def __init__(self, backend: ConsultationBackend, clock: Clock | None = None) -> None:
        self._backend = backend
        self._clock = clock or SystemClock()

    async def send(self, consultation: Consultation, dto: FallbackSendDTO) -> Message:
        """Post the message and return the confirmed copy.

        Raises SendFailedError carrying the original text on any failure.
        """
        logger.warning("Relay unavailable, sending to %s via backend", dto.consultation_id)
        try:
            raw = await self._backend.post_message(dto)
        except BackendError as exc:
            logger.error("Fallback send to %s failed: %s", dto.consultation_id, exc.detail)
            raise SendFailedError(exc.detail or "Failed to send message", dto.body) from exc

        try:
            return message_from_api(self._complete(raw, dto), consultation)
        except ValueError as exc:
            raise SendFailedError(f"unexpected send response: {exc}", dto.body) from exc

    def _complete(self, raw: dict[str, Any], dto: FallbackSendDTO) -> dict[str, Any]:
        # Fields missing from the response fall back to what was sent. Without an id
        # the copy stays a placeholder so a later relay copy can still reconcile it.
        now = self._clock.now()
        return {
            "consultation_id": dto.consultation_id,
            "sender_id": dto.sender_id,
            "sender_type": dto.sender_type.value,
            "message": dto.body,
            **{k: v for k, v in raw.items() if v is not None},
            "id": raw.get("id") or new_temp_id(now),
            "created_at": raw.get("created_at") or now,
        }
