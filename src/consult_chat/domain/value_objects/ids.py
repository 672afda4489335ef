from __future__ import annotations

import itertools
import uuid
from datetime import datetime
from typing import NewType

ConsultationId = NewType("ConsultationId", str)
MessageId = NewType("MessageId", str)
UserId = NewType("UserId", str)

TEMP_ID_PREFIX = "temp-"
INITIAL_MESSAGE_ID = MessageId("initial")

_temp_seq = itertools.count(1)


def new_temp_id(now: datetime) -> MessageId:
    """Placeholder id for a message the relay has not confirmed yet."""
    millis = int(now.timestamp() * 1000)
    return MessageId(f"{TEMP_ID_PREFIX}{millis}-{next(_temp_seq)}")


def is_temp_id(message_id: str) -> bool:
    return message_id.startswith(TEMP_ID_PREFIX)


def new_client_msg_id() -> str:
    return uuid.uuid4().hex
