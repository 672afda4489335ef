from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from consult_chat.application.exceptions import NotConnectedError, RelayError
from consult_chat.domain.value_objects.enums import RelayEvent
from consult_chat.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class ChannelMembership:
    """Keeps at most one consultation channel active on a connection."""

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection
        self._active: str | None = None

    @property
    def active(self) -> str | None:
        return self._active

    async def join(self, consultation_id: str) -> bool:
        self._active = consultation_id
        if not self._connection.connected:
            logger.warning("Not joining %s: relay is %s", consultation_id, self._connection.state)
            return False
        try:
            await self._connection.emit(RelayEvent.JOIN_CONSULTATION, consultation_id)
        except (NotConnectedError, RelayError) as exc:
            logger.warning("Join %s failed: %s", consultation_id, exc.detail)
            return False
        logger.info("Joined consultation %s", consultation_id)
        return True

    async def leave(self, consultation_id: str) -> None:
        if self._active == consultation_id:
            self._active = None
        if not self._connection.connected:
            logger.debug("Skipping leave %s signal: relay is %s", consultation_id, self._connection.state)
            return
        try:
            await self._connection.emit(RelayEvent.LEAVE_CONSULTATION, consultation_id)
        except (NotConnectedError, RelayError) as exc:
            logger.warning("Leave %s failed: %s", consultation_id, exc.detail)
            return
        logger.info("Left consultation %s", consultation_id)

    async def switch(self, consultation_id: str | None) -> bool:
        """Leave the current channel, then join `consultation_id` (if any)."""
        previous = self._active
        if previous is not None and previous != consultation_id:
            await self.leave(previous)
        if consultation_id is None:
            return False
        return await self.join(consultation_id)

    async def rejoin(self) -> bool:
        if self._active is None:
            return False
        return await self.join(self._active)

    @asynccontextmanager
    async def scoped(self, consultation_id: str) -> AsyncIterator[bool]:
        joined = await self.switch(consultation_id)
        try:
            yield joined
        finally:
            await self.leave(consultation_id)
