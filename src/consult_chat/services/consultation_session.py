"""Client-side consultation chat: wires the relay connection to the view state."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from consult_chat.application.dto.message import FallbackSendDTO, SendMessageDTO
from consult_chat.application.dto.results import SendResult
from consult_chat.application.exceptions import BackendError, NotConnectedError, RelayError, SendFailedError
from consult_chat.application.ports.backend import ConsultationBackend
from consult_chat.application.ports.clock import Clock, SystemClock
from consult_chat.domain.entities.consultation import Consultation
from consult_chat.domain.entities.message import Message
from consult_chat.domain.value_objects.enums import ConnectionState, RelayEvent, SenderType
from consult_chat.domain.value_objects.ids import new_client_msg_id, new_temp_id
from consult_chat.infrastructure.http.mappers import message_from_api
from consult_chat.infrastructure.relay.protocol import ErrorPayload, TypingPayload
from consult_chat.services import history_service
from consult_chat.services.channel_membership import ChannelMembership
from consult_chat.services.connection_manager import ConnectionManager
from consult_chat.services.message_store import MessageStore
from consult_chat.services.send_fallback import FallbackSender
from consult_chat.services.typing_tracker import TypingTracker

logger = logging.getLogger(__name__)


class ConsultationSession:
    """State behind one consultations view.

    Failures surface as inline state (`last_error`, `restored_input`,
    connection state) and never propagate out of event handlers.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        backend: ConsultationBackend,
        *,
        user_id: str,
        clock: Clock | None = None,
        tolerance_ms: int = 5000,
        typing_expiry_seconds: float = 10.0,
    ) -> None:
        self.user_id = user_id
        self._connection = connection
        self._backend = backend
        self._clock = clock or SystemClock()

        self.store = MessageStore(tolerance_ms=tolerance_ms)
        self.typing = TypingTracker(expiry_seconds=typing_expiry_seconds, clock=self._clock)
        self.membership = ChannelMembership(connection)
        self.fallback = FallbackSender(backend, self._clock)

        self.consultations: list[Consultation] = []
        self.consultation: Consultation | None = None
        self.sending = False
        self.last_error: str | None = None
        self.restored_input: str | None = None

        self._background: set[asyncio.Task[Any]] = set()
        self._remove_state_listener = connection.add_state_listener(self._on_state_change)
        connection.bind(
            {
                RelayEvent.NEW_MESSAGE: self._on_new_message,
                RelayEvent.MESSAGE_SENT: self._on_message_sent,
                RelayEvent.MESSAGE_ERROR: self._on_message_error,
                RelayEvent.USER_TYPING: self._on_user_typing,
                RelayEvent.USER_STOPPED_TYPING: self._on_user_stopped_typing,
                RelayEvent.JOINED_CONSULTATION: self._on_channel_ack,
                RelayEvent.LEFT_CONSULTATION: self._on_channel_ack,
            }
        )

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.store.messages

    # -- lifecycle ---------------------------------------------------------

    async def open(self, endpoint: str) -> str | None:
        return await self._connection.open(endpoint)

    async def close(self) -> None:
        if self.consultation is not None:
            await self.membership.leave(self.consultation.id)
        self._remove_state_listener()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._connection.close()

    async def __aenter__(self) -> ConsultationSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- consultations -----------------------------------------------------

    async def load_consultations(self) -> list[Consultation]:
        try:
            self.consultations = await history_service.list_consultations(self.user_id, self._backend)
        except BackendError as exc:
            logger.error("Listing consultations for %s failed: %s", self.user_id, exc.detail)
            self.last_error = exc.detail
            return self.consultations
        if self.consultation is None and self.consultations:
            await self.select(self.consultations[0])
        return self.consultations

    async def select(self, consultation: Consultation | None) -> None:
        """Make `consultation` the active one: switch channels, then load its history."""
        self.consultation = consultation
        consultation_id = consultation.id if consultation else None
        self.store.seed(consultation_id)
        self.typing.activate(consultation_id)
        await self.membership.switch(consultation_id)
        if consultation is None:
            return

        history = await history_service.load_history(consultation, self._backend)
        if self.consultation is consultation:
            self.store.load_history(history)

    # -- sending -----------------------------------------------------------

    async def send(self, text: str) -> SendResult | None:
        body = text.strip()
        consultation = self.consultation
        if not body or consultation is None:
            return None

        self.last_error = None
        self.restored_input = None
        if self._connection.connected:
            return await self._send_live(consultation, body)
        return await self._send_fallback(consultation, body)

    async def _send_live(self, consultation: Consultation, body: str) -> SendResult:
        now = self._clock.now()
        client_msg_id = new_client_msg_id()
        optimistic = Message(
            id=new_temp_id(now),
            consultation_id=consultation.id,
            sender_id=self.user_id,
            sender_type=SenderType.CLIENT,
            body=body,
            created_at=now,
            sender_name=consultation.client_name,
            client_msg_id=client_msg_id,
        )
        self.store.add_optimistic(optimistic)

        dto = SendMessageDTO(
            consultation_id=consultation.id,
            sender_id=self.user_id,
            body=body,
            sender_name=consultation.client_name,
            client_msg_id=client_msg_id,
        )
        self.sending = True
        try:
            await self._connection.emit(RelayEvent.SEND_MESSAGE, dto.to_wire())
        except (NotConnectedError, RelayError) as exc:
            logger.warning("Live send lost (%s), retrying via backend", exc.detail)
            self.sending = False
            result = await self._send_fallback(consultation, body)
            if not result.ok:
                self.store.discard(optimistic.id)
            return result
        return SendResult(via="relay", message=optimistic)

    async def _send_fallback(self, consultation: Consultation, body: str) -> SendResult:
        dto = FallbackSendDTO(consultation_id=consultation.id, sender_id=self.user_id, body=body)
        self.sending = True
        try:
            message = await self.fallback.send(consultation, dto)
        except SendFailedError as exc:
            self.last_error = exc.detail
            self.restored_input = exc.body
            return SendResult(via="fallback", error=exc.detail, restored_input=exc.body)
        finally:
            self.sending = False
        self.store.merge_confirmed(message)
        return SendResult(via="fallback", message=message)

    # -- typing ------------------------------------------------------------

    async def start_typing(self, user_name: str) -> None:
        if self.consultation is None or not self._connection.connected:
            return
        await self._emit_quietly(
            RelayEvent.TYPING_START,
            {"consultation_id": self.consultation.id, "user_name": user_name},
        )

    async def stop_typing(self) -> None:
        if self.consultation is None or not self._connection.connected:
            return
        await self._emit_quietly(RelayEvent.TYPING_STOP, {"consultation_id": self.consultation.id})

    async def _emit_quietly(self, event: str, data: dict[str, Any]) -> None:
        try:
            await self._connection.emit(event, data)
        except (NotConnectedError, RelayError) as exc:
            logger.debug("Dropped %s: %s", event, exc.detail)

    # -- inbound relay events ----------------------------------------------

    def _on_new_message(self, data: Any) -> None:
        try:
            message = message_from_api(data, self.consultation)
        except (ValidationError, TypeError):
            logger.warning("Dropping malformed new-message payload %r", data)
            return
        self.store.merge_confirmed(message)

    def _on_message_sent(self, data: Any) -> None:
        self.sending = False
        ack = data.get("message") if isinstance(data, dict) else None
        if isinstance(ack, dict) and ack.get("id"):
            try:
                self.store.merge_confirmed(message_from_api(ack, self.consultation))
            except ValidationError:
                logger.debug("message-sent ack without a full message: %r", ack)

    def _on_message_error(self, data: Any) -> None:
        self.sending = False
        try:
            error = ErrorPayload.model_validate(data if isinstance(data, dict) else {}).error
        except ValidationError:
            error = "Unknown error"
        logger.error("Relay rejected message: %s", error)
        self.last_error = f"Failed to send message: {error}"

    def _on_user_typing(self, data: Any) -> None:
        payload = self._typing_payload(data)
        if payload is not None:
            self.typing.started(payload.consultation_id, payload.user_name)

    def _on_user_stopped_typing(self, data: Any) -> None:
        payload = self._typing_payload(data)
        if payload is not None:
            self.typing.stopped(payload.consultation_id, payload.user_name)

    def _typing_payload(self, data: Any) -> TypingPayload | None:
        try:
            return TypingPayload.model_validate(data)
        except ValidationError:
            logger.debug("Dropping malformed typing payload %r", data)
            return None

    def _on_channel_ack(self, data: Any) -> None:
        logger.debug("Channel ack: %r", data)

    def _on_state_change(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTED and self.membership.active is not None:
            task = asyncio.create_task(self.membership.rejoin(), name="relay-rejoin")
            self._background.add(task)
            task.add_done_callback(self._background.discard)
