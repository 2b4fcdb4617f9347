"""Wire envelope for realtime events: ``{"event": <type>, "data": <payload>}``."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class EventEnvelope(BaseModel):
    event: str
    data: dict[str, Any]


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    return EventEnvelope(event=str(event_type), data=payload).model_dump_json()


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    """Raises pydantic.ValidationError (a ValueError) on malformed input."""
    envelope = EventEnvelope.model_validate_json(raw)
    return envelope.event, envelope.data
