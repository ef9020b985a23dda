"""
Relay Core

Transcript events, SSE framing and the broadcast hub.
"""

from .events import EVENT_TYPES, Final, Partial, TranscriptEvent, parse_event, to_dict, to_json
from .exceptions import (
    EventParseError,
    MissingCredentialError,
    PipelineError,
    RelayError,
    TranscriptionConnectionError,
    TranscriptionServiceError,
)
from .hub import BroadcastHub, Subscriber
from .sse import SSEMessage, SSEParser, format_comment, format_data, format_event, format_retry

__all__ = [
    "EVENT_TYPES",
    "BroadcastHub",
    "EventParseError",
    "Final",
    "MissingCredentialError",
    "Partial",
    "PipelineError",
    "RelayError",
    "SSEMessage",
    "SSEParser",
    "Subscriber",
    "TranscriptEvent",
    "TranscriptionConnectionError",
    "TranscriptionServiceError",
    "format_comment",
    "format_data",
    "format_event",
    "format_retry",
    "parse_event",
    "to_dict",
    "to_json",
]
