"""
Transcript Reconciler

Per-viewer state machine that turns the partial/final event stream into
display output without duplicates.

Transitions:
  IDLE         + Partial(t)  -> show in-progress t          -> IN_PROGRESS(t)
  IN_PROGRESS  + Partial(t') -> replace in-progress text    -> IN_PROGRESS(t')
  IN_PROGRESS  + Final(f)    -> add line f, drop in-progress -> IDLE
  IDLE         + Final(f)    -> add line f                   -> IDLE

Malformed payloads are logged and dropped; they never change state.
"""

import logging
from collections import deque
from collections.abc import Callable
from enum import Enum

from relay.core.events import Final, Partial, TranscriptEvent, parse_event
from relay.core.exceptions import EventParseError

logger = logging.getLogger(__name__)


class ReconcilerState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"


class ClientReconciler:
    """
    Reconciles partial/final transcript events into display lines.

    Simple API:
        reconciler = ClientReconciler()
        reconciler.handle_message('{"type": "partial", "text": "hel"}')
        reconciler.handle_message('{"type": "partial", "text": "hello"}')
        reconciler.handle_message('{"type": "final", "text": "hello world"}')

        reconciler.lines    # ["hello world"]
        reconciler.partial  # None

    Callbacks:
        reconciler.on_change = lambda: render(reconciler.lines, reconciler.partial)
    """

    def __init__(self, max_lines: int | None = 500):
        """
        Initialize reconciler.

        Args:
            max_lines: Permanent lines to keep (oldest dropped first). None for all.
        """
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._partial: str | None = None
        self.final_count = 0
        self.dropped = 0

        # Callback when display output changes
        self.on_change: Callable[[], None] | None = None

    @property
    def state(self) -> ReconcilerState:
        if self._partial is None:
            return ReconcilerState.IDLE
        return ReconcilerState.IN_PROGRESS

    @property
    def partial(self) -> str | None:
        """Text of the in-progress element, or None when idle."""
        return self._partial

    @property
    def lines(self) -> list[str]:
        """Permanent (final) elements in arrival order."""
        return list(self._lines)

    def apply(self, event: TranscriptEvent) -> ReconcilerState:
        """
        Apply one decoded event.

        Returns:
            State after the transition
        """
        match event:
            case Partial(text=text):
                action = "REPLACE" if self._partial is not None else "CREATE"
                logger.debug(f"[{action}] partial = '{text[:50]}'")
                self._partial = text
            case Final(text=text):
                logger.debug(f"[FINAL] '{text[:50]}' (partial cleared: {self._partial is not None})")
                self._lines.append(text)
                self.final_count += 1
                self._partial = None
            case _:
                logger.warning(f"Ignoring unsupported event: {event!r}")
                return self.state

        self._notify()
        return self.state

    def handle_message(self, data: str | bytes | dict) -> bool:
        """
        Parse and apply one wire payload.

        Returns:
            True if applied, False if the payload was malformed and dropped
        """
        try:
            event = parse_event(data)
        except EventParseError as e:
            self.dropped += 1
            logger.warning(f"Dropping message: {e}")
            return False

        self.apply(event)
        return True

    def reset(self) -> None:
        """Discard the in-progress element and return to IDLE (fresh connection)."""
        if self._partial is not None:
            self._partial = None
            self._notify()

    def clear(self) -> None:
        """Discard all display output."""
        self._lines.clear()
        self._partial = None
        self._notify()

    def get_text(self, include_partial: bool = True) -> str:
        """Display output as newline-separated text."""
        lines = list(self._lines)
        if include_partial and self._partial:
            lines.append(self._partial)
        return "\n".join(lines)

    def _notify(self) -> None:
        if self.on_change:
            try:
                self.on_change()
            except Exception as e:
                logger.error(f"on_change callback failed: {e}")

    def __repr__(self) -> str:
        return f"ClientReconciler({self.state.value}, {len(self._lines)} lines)"

    def __len__(self) -> int:
        return len(self._lines)
