from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from consult_chat.application.exceptions import RelayError
from consult_chat.infrastructure.relay.protocol import RelayEnvelope


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data}, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> tuple[str, Any]:
    try:
        envelope = RelayEnvelope.model_validate_json(raw)
    except ValueError as exc:
        raise RelayError(f"malformed relay frame: {exc}") from exc
    return envelope.event, envelope.data
