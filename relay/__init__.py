"""
Caption Relay

Relays live speech-to-text output to any number of passive viewers:
- core: transcript events, SSE framing, broadcast hub
- pipeline: audio -> transcription service -> events
- audio: microphone capture
- client: viewer-side reconciler and reconnecting SSE client
- config: environment settings
- utils: logging

Usage:
    from relay.core import BroadcastHub, Partial
    from relay.client import ClientReconciler

    hub = BroadcastHub()
    hub.broadcast(Partial("hello"))
"""

from .client import ClientReconciler, SSEViewer
from .config import RelaySettings
from .core import BroadcastHub, Final, Partial, TranscriptEvent, parse_event
from .utils import get_logger, setup_logging

__all__ = [
    "BroadcastHub",
    "ClientReconciler",
    "Final",
    "Partial",
    "RelaySettings",
    "SSEViewer",
    "TranscriptEvent",
    "get_logger",
    "parse_event",
    "setup_logging",
]

__version__ = "1.0.0"
