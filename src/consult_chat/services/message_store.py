"""Ordered, de-duplicated message list for the active consultation."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, Iterable

from consult_chat.domain.entities.message import Message
from consult_chat.domain.value_objects.enums import MergeOutcome

logger = logging.getLogger(__name__)

ChangeListener = Callable[[tuple[Message, ...]], None]


class MessageStore:
    """Merges history, optimistic local sends and confirmed relay copies.

    The list is unique by id and sorted ascending by `created_at` after every
    mutation. An optimistic entry becomes confirmed by replacement in its slot,
    never by delete + insert.
    """

    def __init__(self, *, tolerance_ms: int = 5000) -> None:
        self._tolerance = timedelta(milliseconds=tolerance_ms)
        self._consultation_id: str | None = None
        self._messages: list[Message] = []
        self._listeners: list[ChangeListener] = []

    @property
    def consultation_id(self) -> str | None:
        return self._consultation_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def pending(self) -> list[Message]:
        return [m for m in self._messages if m.is_optimistic]

    def get(self, message_id: str) -> Message | None:
        for m in self._messages:
            if m.id == message_id:
                return m
        return None

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def seed(self, consultation_id: str | None, history: Iterable[Message] = ()) -> None:
        """Reset to `consultation_id` with confirmed history; drops anything held before."""
        self._consultation_id = consultation_id
        seen: set[str] = set()
        self._messages = []
        for m in history:
            if m.id in seen:
                continue
            seen.add(m.id)
            self._messages.append(m)
        self._changed()

    def load_history(self, history: Iterable[Message]) -> None:
        """Add confirmed history that arrived after live events were already merged.

        A history entry reconciles a matching placeholder like any confirmed copy.
        """
        present = {m.id for m in self._messages}
        added = False
        for m in history:
            if m.consultation_id != self._consultation_id or m.id in present:
                continue
            present.add(m.id)
            index = self._find_placeholder(m)
            if index is not None:
                self._messages[index] = m
            else:
                self._messages.append(m)
            added = True
        if added:
            self._changed()

    def add_optimistic(self, message: Message) -> None:
        if not message.is_optimistic:
            raise ValueError(f"optimistic message needs a placeholder id, got {message.id!r}")
        if message.consultation_id != self._consultation_id:
            logger.debug("Ignoring optimistic message for inactive consultation %s", message.consultation_id)
            return
        if self.get(message.id) is not None:
            return
        self._messages.append(message)
        self._changed()

    def discard(self, message_id: str) -> bool:
        """Drop a placeholder whose send was abandoned; confirmed messages are never removed."""
        for i, m in enumerate(self._messages):
            if m.id == message_id and m.is_optimistic:
                del self._messages[i]
                self._changed()
                return True
        return False

    def merge_confirmed(self, message: Message) -> MergeOutcome:
        if message.consultation_id != self._consultation_id:
            logger.debug("Ignoring message %s for inactive consultation %s", message.id, message.consultation_id)
            return MergeOutcome.IGNORED

        if self.get(message.id) is not None:
            logger.debug("Message %s already present", message.id)
            self._drop_keyed_twin(message)
            return MergeOutcome.DUPLICATE

        index = self._find_placeholder(message)
        if index is not None:
            logger.debug("Reconciled %s with %s", self._messages[index].id, message.id)
            self._messages[index] = message
            self._changed()
            return MergeOutcome.REPLACED

        self._messages.append(message)
        self._changed()
        return MergeOutcome.APPENDED

    def _drop_keyed_twin(self, confirmed: Message) -> None:
        # Only an echoed key identifies the same send; the content window could
        # belong to a second identical send still in flight.
        if not confirmed.client_msg_id:
            return
        for i, m in enumerate(self._messages):
            if m.is_optimistic and m.client_msg_id == confirmed.client_msg_id:
                logger.debug("Dropping %s, already confirmed as %s", m.id, confirmed.id)
                del self._messages[i]
                self._changed()
                return

    def _find_placeholder(self, confirmed: Message) -> int | None:
        # Echoed client key wins; otherwise the earliest content + time-window match.
        if confirmed.client_msg_id:
            for i, m in enumerate(self._messages):
                if m.is_optimistic and m.client_msg_id == confirmed.client_msg_id:
                    return i
        for i, m in enumerate(self._messages):
            if not m.is_optimistic:
                continue
            if confirmed.client_msg_id and m.client_msg_id and m.client_msg_id != confirmed.client_msg_id:
                continue
            if (
                m.sender_id == confirmed.sender_id
                and m.body == confirmed.body
                and abs(m.created_at - confirmed.created_at) < self._tolerance
            ):
                return i
        return None

    def _changed(self) -> None:
        self._messages.sort(key=lambda m: m.created_at)
        snapshot = tuple(self._messages)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Message store listener failed")
