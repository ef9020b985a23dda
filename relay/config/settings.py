"""
Relay Settings

All runtime configuration comes from environment variables. Defaults suit a
local run: `ASSEMBLYAI_API_KEY=... python services/relay/relay_service.py`.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

BACKEND_ASSEMBLYAI = "assemblyai"
BACKEND_LOCAL = "local"
BACKENDS = (BACKEND_ASSEMBLYAI, BACKEND_LOCAL)

DEFAULT_ASSEMBLYAI_URL = "wss://streaming.assemblyai.com/v3/ws"
DEFAULT_LOCAL_ASR_URL = "ws://localhost:8001/stream"


def _get_int(env: Mapping[str, str], name: str, default: int | None) -> int | None:
    value = env.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass
class RelaySettings:
    """Process configuration for the relay service."""

    host: str = "0.0.0.0"
    port: int = 3000

    # Transcription
    backend: str = BACKEND_ASSEMBLYAI
    assemblyai_api_key: str | None = field(default=None, repr=False)
    assemblyai_url: str = DEFAULT_ASSEMBLYAI_URL
    local_asr_url: str = DEFAULT_LOCAL_ASR_URL
    connect_timeout: float = 10.0

    # Audio
    sample_rate: int = 16000
    chunk_ms: int = 100
    audio_device_index: int | None = None
    audio_queue_size: int = 100

    # Viewers
    keepalive_interval: float = 20.0
    subscriber_queue_size: int = 256
    client_retry_ms: int | None = 3000

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.backend = self.backend.lower()
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown transcription backend {self.backend!r}, expected one of {BACKENDS}")
        if self.keepalive_interval <= 0:
            raise ValueError("KEEPALIVE_INTERVAL must be positive")
        if self.subscriber_queue_size < 1:
            raise ValueError("SUBSCRIBER_QUEUE_SIZE must be at least 1")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RelaySettings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ (for tests)
        """
        env = os.environ if env is None else env
        return cls(
            host=env.get("HOST", "0.0.0.0"),
            port=_get_int(env, "PORT", 3000),
            backend=env.get("TRANSCRIPTION_BACKEND", BACKEND_ASSEMBLYAI),
            assemblyai_api_key=env.get("ASSEMBLYAI_API_KEY") or None,
            assemblyai_url=env.get("ASSEMBLYAI_URL", DEFAULT_ASSEMBLYAI_URL),
            local_asr_url=env.get("LOCAL_ASR_URL", DEFAULT_LOCAL_ASR_URL),
            connect_timeout=_get_float(env, "CONNECT_TIMEOUT", 10.0),
            sample_rate=_get_int(env, "SAMPLE_RATE", 16000),
            chunk_ms=_get_int(env, "CHUNK_MS", 100),
            audio_device_index=_get_int(env, "AUDIO_DEVICE_INDEX", None),
            audio_queue_size=_get_int(env, "AUDIO_QUEUE_SIZE", 100),
            keepalive_interval=_get_float(env, "KEEPALIVE_INTERVAL", 20.0),
            subscriber_queue_size=_get_int(env, "SUBSCRIBER_QUEUE_SIZE", 256),
            client_retry_ms=_get_int(env, "CLIENT_RETRY_MS", 3000),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
