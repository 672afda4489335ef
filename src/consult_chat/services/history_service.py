"""Consultation listing and history load over the request/response backend."""
from __future__ import annotations

import logging

from consult_chat.application.exceptions import BackendError
from consult_chat.application.ports.backend import ConsultationBackend
from consult_chat.domain.entities.consultation import Consultation
from consult_chat.domain.entities.message import Message
from consult_chat.infrastructure.http.mappers import consultation_from_api, message_from_api

logger = logging.getLogger(__name__)


async def list_consultations(user_id: str, backend: ConsultationBackend) -> list[Consultation]:
    raw = await backend.list_consultations(user_id)
    consultations: list[Consultation] = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object consultation %r", item)
            continue
        try:
            consultations.append(consultation_from_api(item))
        except ValueError:
            logger.warning("Skipping malformed consultation %r", item.get("id"))
    return consultations


async def load_history(consultation: Consultation, backend: ConsultationBackend) -> list[Message]:
    """Confirmed history for `consultation`, led by its booking note.

    A failed request still yields the booking note so the conversation is never blank.
    """
    messages = [consultation.initial_message()]
    try:
        raw = await backend.fetch_messages(consultation.id)
    except BackendError as exc:
        logger.error("History load for %s failed: %s", consultation.id, exc.detail)
        return messages

    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object history message %r", item)
            continue
        try:
            messages.append(message_from_api(item, consultation))
        except ValueError:
            logger.warning("Skipping malformed history message %r", item.get("id"))
    messages.sort(key=lambda m: m.created_at)
    return messages
