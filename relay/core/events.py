"""
Transcript Events

The data shape exchanged between the pipeline, the hub and the viewers.

Wire form:
  {"type": "partial", "text": "hello wor"}    # in-progress utterance
  {"type": "final", "text": "Hello world."}   # completed utterance

`text` is always the full text of the utterance so far, never a delta.
"""

import json
from dataclasses import dataclass
from typing import Any, ClassVar

from .exceptions import EventParseError


@dataclass(frozen=True)
class Partial:
    """In-progress transcript; replaced by the next Partial or a Final."""

    text: str
    type: ClassVar[str] = "partial"


@dataclass(frozen=True)
class Final:
    """Completed transcript for one utterance."""

    text: str
    type: ClassVar[str] = "final"


TranscriptEvent = Partial | Final

EVENT_TYPES: dict[str, type[Partial] | type[Final]] = {
    Partial.type: Partial,
    Final.type: Final,
}


def to_dict(event: TranscriptEvent) -> dict[str, str]:
    return {"type": event.type, "text": event.text}


def to_json(event: TranscriptEvent) -> str:
    """Serialize an event to its compact JSON wire form."""
    return json.dumps(to_dict(event), ensure_ascii=False, separators=(",", ":"))


def parse_event(raw: str | bytes | dict[str, Any]) -> TranscriptEvent:
    """
    Decode a wire payload into a TranscriptEvent.

    Args:
        raw: JSON text or an already-decoded dict

    Returns:
        Partial or Final

    Raises:
        EventParseError: payload is not JSON, not an object, has a missing or
            unknown "type", a non-string "type" or "text"
    """
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EventParseError(f"invalid JSON: {e}", raw) from e

    if not isinstance(data, dict):
        raise EventParseError("payload is not an object", raw)

    event_type = data.get("type")
    if event_type is None:
        raise EventParseError("missing 'type'", raw)
    if not isinstance(event_type, str):
        raise EventParseError("'type' is not a string", raw)

    event_cls = EVENT_TYPES.get(event_type)
    if event_cls is None:
        raise EventParseError(f"unknown type {event_type!r}", raw)

    text = data.get("text", "")
    if not isinstance(text, str):
        raise EventParseError("'text' is not a string", raw)

    return event_cls(text=text)
