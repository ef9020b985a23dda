"""
Unit tests for relay.pipeline.backends module.
"""

import json
from unittest.mock import AsyncMock

import pytest

from relay.config.settings import RelaySettings
from relay.core.events import Final, Partial
from relay.core.exceptions import MissingCredentialError, TranscriptionServiceError
from relay.pipeline.backends import AssemblyAIBackend, LocalASRBackend, create_backend


def turn(transcript: str, end_of_turn: bool = False, formatted: bool = False) -> str:
    return json.dumps(
        {
            "type": "Turn",
            "turn_order": 0,
            "transcript": transcript,
            "end_of_turn": end_of_turn,
            "turn_is_formatted": formatted,
        }
    )


class TestAssemblyAIBackend:
    """Tests for AssemblyAIBackend class."""

    def test_uri_carries_audio_params(self):
        backend = AssemblyAIBackend(api_key="key", url="wss://example.test/v3/ws", sample_rate=16000)
        assert backend.uri.startswith("wss://example.test/v3/ws?")
        assert "sample_rate=16000" in backend.uri
        assert "encoding=pcm_s16le" in backend.uri
        assert "format_turns=true" in backend.uri

    def test_authorization_header(self):
        assert AssemblyAIBackend(api_key="secret").headers == {"Authorization": "secret"}

    def test_validate_missing_key(self):
        with pytest.raises(MissingCredentialError) as exc_info:
            AssemblyAIBackend(api_key=None).validate()
        assert exc_info.value.variable == "ASSEMBLYAI_API_KEY"

    def test_validate_empty_key(self):
        with pytest.raises(MissingCredentialError):
            AssemblyAIBackend(api_key="").validate()

    def test_validate_ok(self):
        AssemblyAIBackend(api_key="key").validate()  # Should not raise

    def test_terminate_message(self):
        assert json.loads(AssemblyAIBackend(api_key="k").terminate_message()) == {"type": "Terminate"}

    def test_begin_records_session(self):
        backend = AssemblyAIBackend(api_key="k")
        assert backend.parse_message('{"type": "Begin", "id": "abc", "expires_at": 0}') is None
        assert backend.session_id == "abc"

    def test_partial_turn(self):
        backend = AssemblyAIBackend(api_key="k")
        assert backend.parse_message(turn("hello wor")) == Partial("hello wor")

    def test_empty_partial_skipped(self):
        assert AssemblyAIBackend(api_key="k").parse_message(turn("")) is None

    def test_unformatted_end_of_turn_skipped(self):
        """With formatting on, only the formatted end-of-turn is final."""
        backend = AssemblyAIBackend(api_key="k")
        assert backend.parse_message(turn("hello world", end_of_turn=True)) is None
        assert backend.parse_message(turn("Hello world.", end_of_turn=True, formatted=True)) == Final(
            "Hello world."
        )

    def test_end_of_turn_without_formatting(self):
        backend = AssemblyAIBackend(api_key="k", format_turns=False)
        assert backend.parse_message(turn("hello world", end_of_turn=True)) == Final("hello world")

    def test_termination(self):
        backend = AssemblyAIBackend(api_key="k")
        assert backend.parse_message('{"type": "Termination", "audio_duration_seconds": 3}') is None

    def test_error_payload_raises(self):
        with pytest.raises(TranscriptionServiceError):
            AssemblyAIBackend(api_key="k").parse_message('{"error": "Invalid API key"}')

    def test_non_json_ignored(self):
        assert AssemblyAIBackend(api_key="k").parse_message("garbage") is None

    def test_unknown_type_ignored(self):
        assert AssemblyAIBackend(api_key="k").parse_message('{"type": "SpeechStarted"}') is None


class TestLocalASRBackend:
    """Tests for LocalASRBackend class."""

    def test_no_credential_required(self):
        LocalASRBackend().validate()  # Should not raise
        assert LocalASRBackend().headers == {}

    def test_uri(self):
        assert LocalASRBackend(url="ws://asr:8001/stream").uri == "ws://asr:8001/stream"

    @pytest.mark.asyncio
    async def test_on_open_sends_config(self):
        ws = AsyncMock()
        await LocalASRBackend(chunk_ms=200).on_open(ws)
        ws.send.assert_called_once_with(json.dumps({"chunk_ms": 200}))

    def test_id_protocol_partial(self):
        message = '{"id": "s0", "text": "hello", "is_final": false}'
        assert LocalASRBackend().parse_message(message) == Partial("hello")

    def test_id_protocol_final(self):
        message = '{"id": "s0", "text": "Hello world.", "is_final": true}'
        assert LocalASRBackend().parse_message(message) == Final("Hello world.")

    def test_id_protocol_empty_text(self):
        assert LocalASRBackend().parse_message('{"id": "s1", "text": "  "}') is None

    def test_legacy_partial(self):
        assert LocalASRBackend().parse_message('{"partial": " hel "}') == Partial("hel")

    def test_legacy_final(self):
        assert LocalASRBackend().parse_message('{"text": "hello"}') == Final("hello")

    def test_error_payload_raises(self):
        with pytest.raises(TranscriptionServiceError):
            LocalASRBackend().parse_message('{"error": "model not loaded"}')

    def test_unrelated_message(self):
        assert LocalASRBackend().parse_message('{"status": "ok"}') is None


class TestCreateBackend:
    """Tests for create_backend factory."""

    def test_default_is_assemblyai(self):
        backend = create_backend(RelaySettings(assemblyai_api_key="k"))
        assert isinstance(backend, AssemblyAIBackend)
        assert backend.api_key == "k"

    def test_local(self):
        settings = RelaySettings(backend="local", local_asr_url="ws://x:1/stream", chunk_ms=300)
        backend = create_backend(settings)
        assert isinstance(backend, LocalASRBackend)
        assert backend.uri == "ws://x:1/stream"
        assert backend.chunk_ms == 300
