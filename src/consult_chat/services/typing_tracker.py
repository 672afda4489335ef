from __future__ import annotations

import logging

from consult_chat.application.ports.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class TypingTracker:
    """Who is typing in the active consultation.

    Names not refreshed by another start within `expiry_seconds` drop out;
    `expiry_seconds=0` keeps them until an explicit stop.
    """

    def __init__(self, *, expiry_seconds: float = 10.0, clock: Clock | None = None) -> None:
        self._expiry = expiry_seconds
        self._clock = clock or SystemClock()
        self._consultation_id: str | None = None
        self._seen: dict[str, float] = {}

    @property
    def consultation_id(self) -> str | None:
        return self._consultation_id

    @property
    def names(self) -> tuple[str, ...]:
        self._expire()
        return tuple(self._seen)

    def activate(self, consultation_id: str | None) -> None:
        if consultation_id != self._consultation_id:
            self._seen.clear()
        self._consultation_id = consultation_id

    def started(self, consultation_id: str, user_name: str | None) -> bool:
        if consultation_id != self._consultation_id or not user_name:
            return False
        self._seen[user_name] = self._clock.monotonic()
        return True

    def stopped(self, consultation_id: str, user_name: str | None) -> bool:
        if consultation_id != self._consultation_id or not user_name:
            return False
        return self._seen.pop(user_name, None) is not None

    def _expire(self) -> None:
        if self._expiry <= 0:
            return
        cutoff = self._clock.monotonic() - self._expiry
        stale = [name for name, seen_at in self._seen.items() if seen_at <= cutoff]
        for name in stale:
            logger.debug("Typing indicator for %s expired", name)
            del self._seen[name]
