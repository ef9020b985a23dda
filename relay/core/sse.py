"""
Server-Sent Events Framing

Encodes transcript events for the viewer push channel and parses the channel
back into messages on the viewer side.

Frames:
  data: {"type":"partial","text":"hel"}\n\n    # application message
  : keep-alive\n\n                              # comment, never application data
  retry: 3000\n\n                               # reconnect delay hint (ms)

A message is only dispatched once its terminating blank line arrives.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass

from .events import TranscriptEvent, to_json

CONNECTED_COMMENT = "connected"
KEEPALIVE_COMMENT = "keep-alive"

# SSE line terminators only; str.splitlines() would also break on U+2028, U+0085 etc.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def format_data(payload: str) -> str:
    """Frame a payload as one SSE message (multi-line payloads become several data lines)."""
    lines = _LINE_BREAK.split(payload)
    return "".join(f"data: {line}\n" for line in lines) + "\n"


def format_event(event: TranscriptEvent) -> str:
    return format_data(to_json(event))


def format_comment(text: str = "") -> str:
    """Frame a comment line; viewers ignore these."""
    return f": {text}\n\n"


def format_retry(milliseconds: int) -> str:
    return f"retry: {int(milliseconds)}\n\n"


@dataclass
class SSEMessage:
    """One dispatched SSE message."""

    data: str
    event: str = "message"
    id: str | None = None


class SSEParser:
    """
    Incremental SSE stream parser.

    Feed it text as it arrives; complete messages come back out. Comment
    lines are counted but never produce messages.

    Usage:
        parser = SSEParser()
        for chunk in stream:
            for message in parser.feed(chunk):
                handle(message.data)
    """

    def __init__(self):
        self._buffer = ""
        self._data: list[str] = []
        self._event = ""
        self._pending_cr = False
        self.last_event_id: str | None = None
        self.retry: int | None = None
        self.comments = 0

    def feed(self, chunk: str) -> list[SSEMessage]:
        """
        Consume a chunk of stream text.

        Args:
            chunk: Decoded text, possibly ending mid-line

        Returns:
            Messages completed by this chunk (may be empty)
        """
        messages = []
        for line in self._split_lines(chunk):
            message = self._process_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def _split_lines(self, chunk: str) -> Iterator[str]:
        # "\r\n" may be split across chunks; a leading "\n" after a trailing "\r" is skipped
        if self._pending_cr and chunk.startswith("\n"):
            chunk = chunk[1:]
        self._pending_cr = False

        self._buffer += chunk
        while True:
            positions = [p for p in (self._buffer.find("\r"), self._buffer.find("\n")) if p >= 0]
            if not positions:
                return
            end = min(positions)
            line = self._buffer[:end]
            if self._buffer[end] == "\r":
                if end + 1 < len(self._buffer):
                    skip = 2 if self._buffer[end + 1] == "\n" else 1
                else:
                    skip = 1
                    self._pending_cr = True
            else:
                skip = 1
            self._buffer = self._buffer[end + skip :]
            yield line

    def _process_line(self, line: str) -> SSEMessage | None:
        if line == "":
            return self._dispatch()

        if line.startswith(":"):
            self.comments += 1
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)
        # Unknown fields are ignored
        return None

    def _dispatch(self) -> SSEMessage | None:
        data, event = self._data, self._event
        self._data, self._event = [], ""
        if not data:
            return None
        return SSEMessage(data="\n".join(data), event=event or "message", id=self.last_event_id)

    def reset(self) -> None:
        """Drop any partially received message (e.g. after a reconnect)."""
        self._buffer = ""
        self._data = []
        self._event = ""
        self._pending_cr = False
