from __future__ import annotations

import json
from typing import Any
from uuid import UUID
from datetime import datetime


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_event(event_type: str, payload: dict[str, Any], *, sender: str | None = None) -> str:
    envelope = {"event": event_type, "data": payload, "sender": sender}
    return json.dumps(envelope, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any], str | None]:
    data = json.loads(raw)
    return data["event"], data.get("data") or {}, data.get("sender")


def serialize_presence(metadata: dict[str, Any], last_seen: float) -> str:
    return json.dumps({"meta": metadata, "last_seen": last_seen}, cls=_Encoder)


def deserialize_presence(raw: str | bytes) -> tuple[dict[str, Any], float]:
    data = json.loads(raw)
    return data.get("meta") or {}, float(data.get("last_seen", 0.0))
