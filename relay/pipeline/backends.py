"""
Transcription Backends

Adapters that map a transcription service's websocket protocol onto the
relay's two event kinds (Partial, Final) plus an error signal.

Backends:
- assemblyai: AssemblyAI Universal Streaming (v3), hosted, needs an API key
- local:      Self-hosted streaming ASR service (Vosk/Parakeet/Whisper style)
              {"id": "s0", "text": "...", "is_final": false}
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlencode

from relay.config.settings import BACKEND_ASSEMBLYAI, BACKEND_LOCAL, RelaySettings
from relay.core.events import Final, Partial, TranscriptEvent
from relay.core.exceptions import MissingCredentialError, TranscriptionServiceError

logger = logging.getLogger(__name__)


class TranscriptionBackend(ABC):
    """Protocol adapter for one transcription service."""

    name: str = ""

    def __init__(self, sample_rate: int = 16000, chunk_ms: int = 100):
        self.sample_rate = sample_rate
        self.chunk_ms = chunk_ms

    @property
    @abstractmethod
    def uri(self) -> str:
        """Websocket URI to connect to."""

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def validate(self) -> None:
        """Raise MissingCredentialError if the backend cannot start."""

    async def on_open(self, ws) -> None:
        """Send any handshake the service expects before audio."""

    def encode_audio(self, chunk: bytes) -> bytes | str:
        return chunk

    def terminate_message(self) -> str | None:
        """Message asking the service to flush and close, if it has one."""
        return None

    @abstractmethod
    def parse_message(self, message: str | bytes) -> TranscriptEvent | None:
        """
        Decode one service message.

        Returns:
            Partial/Final, or None for messages that carry no transcript

        Raises:
            TranscriptionServiceError: the message is an error signal
        """


class AssemblyAIBackend(TranscriptionBackend):
    """
    AssemblyAI Universal Streaming.

    Protocol:
    1. Connect with the API key in the Authorization header
    2. Stream binary PCM (s16le, mono)
    3. Receive {"type": "Begin"}, then {"type": "Turn", "transcript": ..., "end_of_turn": ...}
    4. Send {"type": "Terminate"}; receive {"type": "Termination"}
    """

    name = BACKEND_ASSEMBLYAI

    def __init__(
        self,
        api_key: str | None,
        url: str = "wss://streaming.assemblyai.com/v3/ws",
        sample_rate: int = 16000,
        chunk_ms: int = 100,
        format_turns: bool = True,
    ):
        super().__init__(sample_rate=sample_rate, chunk_ms=chunk_ms)
        self.api_key = api_key
        self.url = url
        self.format_turns = format_turns
        self.session_id: str | None = None

    @property
    def uri(self) -> str:
        params = {
            "sample_rate": self.sample_rate,
            "encoding": "pcm_s16le",
            "format_turns": str(self.format_turns).lower(),
        }
        return f"{self.url}?{urlencode(params)}"

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": self.api_key or ""}

    def validate(self) -> None:
        if not self.api_key:
            raise MissingCredentialError(self.name, "ASSEMBLYAI_API_KEY")

    def terminate_message(self) -> str | None:
        return json.dumps({"type": "Terminate"})

    def parse_message(self, message: str | bytes) -> TranscriptEvent | None:
        data = _load_json(message)
        if data is None:
            return None

        if "error" in data:
            raise TranscriptionServiceError(self.name, str(data["error"]))

        message_type = data.get("type")
        if message_type == "Begin":
            self.session_id = data.get("id")
            logger.info(f"AssemblyAI session started: {self.session_id}")
            return None
        if message_type == "Termination":
            logger.info(
                f"AssemblyAI session terminated "
                f"({data.get('audio_duration_seconds', 0)}s of audio)"
            )
            return None
        if message_type != "Turn":
            logger.debug(f"Ignoring AssemblyAI message type {message_type!r}")
            return None

        text = (data.get("transcript") or "").strip()
        if not data.get("end_of_turn"):
            return Partial(text) if text else None

        # With formatting on, the unformatted end-of-turn is followed by a formatted copy
        if self.format_turns and not data.get("turn_is_formatted"):
            return None
        return Final(text) if text else None


class LocalASRBackend(TranscriptionBackend):
    """
    Self-hosted streaming ASR service.

    Protocol:
    1. Connect to ws://host:port/stream
    2. Send config JSON: {"chunk_ms": X}
    3. Stream raw PCM bytes (int16, 16kHz, mono)
    4. Receive {"id": "s0", "text": "...", "is_final": true/false}
       or legacy {"partial": "..."} / {"text": "..."}
    """

    name = BACKEND_LOCAL

    def __init__(self, url: str = "ws://localhost:8001/stream", sample_rate: int = 16000, chunk_ms: int = 100):
        super().__init__(sample_rate=sample_rate, chunk_ms=chunk_ms)
        self.url = url

    @property
    def uri(self) -> str:
        return self.url

    async def on_open(self, ws) -> None:
        await ws.send(json.dumps({"chunk_ms": self.chunk_ms}))

    def parse_message(self, message: str | bytes) -> TranscriptEvent | None:
        data = _load_json(message)
        if data is None:
            return None

        if "error" in data:
            raise TranscriptionServiceError(self.name, str(data["error"]))

        # ID-based protocol
        if "id" in data:
            text = (data.get("text") or "").strip()
            if not text:
                return None
            return Final(text) if data.get("is_final") else Partial(text)

        # Legacy protocol
        if "partial" in data:
            text = (data["partial"] or "").strip()
            return Partial(text) if text else None
        if "text" in data:
            text = (data["text"] or "").strip()
            return Final(text) if text else None

        return None


def _load_json(message: str | bytes) -> dict[str, Any] | None:
    try:
        data = json.loads(message)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug(f"Ignoring non-JSON message: {message[:80]!r}")
        return None
    if not isinstance(data, dict):
        logger.debug(f"Ignoring non-object message: {data!r}")
        return None
    return data


def create_backend(settings: RelaySettings) -> TranscriptionBackend:
    """Build the backend selected by TRANSCRIPTION_BACKEND."""
    if settings.backend == BACKEND_LOCAL:
        return LocalASRBackend(
            url=settings.local_asr_url,
            sample_rate=settings.sample_rate,
            chunk_ms=settings.chunk_ms,
        )
    return AssemblyAIBackend(
        api_key=settings.assemblyai_api_key,
        url=settings.assemblyai_url,
        sample_rate=settings.sample_rate,
        chunk_ms=settings.chunk_ms,
    )
