from __future__ import annotations

from enum import StrEnum


class SenderType(StrEnum):
    CLIENT = "client"
    DESIGNER = "designer"


class ConsultationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class RelayEvent(StrEnum):
    # client -> relay
    JOIN_CONSULTATION = "join-consultation"
    LEAVE_CONSULTATION = "leave-consultation"
    SEND_MESSAGE = "send-message"
    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"
    # relay -> client
    CONNECTED = "connected"
    NEW_MESSAGE = "new-message"
    MESSAGE_SENT = "message-sent"
    MESSAGE_ERROR = "message-error"
    USER_TYPING = "user-typing"
    USER_STOPPED_TYPING = "user-stopped-typing"
    JOINED_CONSULTATION = "joined-consultation"
    LEFT_CONSULTATION = "left-consultation"


class MergeOutcome(StrEnum):
    REPLACED = "replaced"
    APPENDED = "appended"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
