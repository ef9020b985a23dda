"""
Audio Pipeline

Forwards captured PCM audio to a transcription service and emits the
resulting transcript events.

Flow:
  capture thread --submit()--> bounded queue --forward()--> websocket
  websocket --receive()--> backend.parse_message() --> on_event(Partial | Final)

Backpressure: the audio queue is bounded; when the service falls behind the
newest chunk is dropped and counted, the capture device is never blocked.

Failure: a missing credential disables the pipeline before any connection is
attempted. Transport errors stop the pipeline (no automatic reconnect) and
are reported through the log and on_error; run() itself does not raise them.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from enum import Enum
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay.core.events import TranscriptEvent
from relay.core.exceptions import (
    MissingCredentialError,
    PipelineError,
    TranscriptionConnectionError,
    TranscriptionServiceError,
)

from .backends import TranscriptionBackend

logger = logging.getLogger(__name__)

# End-of-audio marker on the audio queue
_END = None


class PipelineState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPED = "stopped"
    FAILED = "failed"
    DISABLED = "disabled"


class AudioPipeline:
    """Capture -> transcription service -> transcript events."""

    def __init__(
        self,
        backend: TranscriptionBackend,
        on_event: Callable[[TranscriptEvent], Any],
        on_error: Callable[[Exception], None] | None = None,
        queue_size: int = 100,
        connect_timeout: float = 10.0,
        drain_timeout: float = 5.0,
    ):
        """
        Initialize audio pipeline.

        Args:
            backend: Transcription service protocol adapter
            on_event: Called with every Partial/Final (normally hub.broadcast)
            on_error: Called with service and transport errors
            queue_size: Audio chunks buffered before dropping
            connect_timeout: Seconds allowed for the websocket handshake
            drain_timeout: Seconds to wait for trailing events after audio ends
        """
        self.backend = backend
        self.on_event = on_event
        self.on_error = on_error
        self.queue_size = queue_size
        self.connect_timeout = connect_timeout
        self.drain_timeout = drain_timeout

        self.state = PipelineState.IDLE
        self.last_error: str | None = None
        self.bytes_sent = 0
        self.events_emitted = 0
        self.dropped_chunks = 0

        self._ws = None
        self._terminated = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._audio_queue: asyncio.Queue[bytes | None] | None = None
        self._connect_attempted = asyncio.Event()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the transcription connection. Must finish before forward().

        Raises:
            MissingCredentialError: backend configuration is incomplete
            TranscriptionConnectionError: the service could not be reached
        """
        try:
            self.backend.validate()
        except MissingCredentialError as e:
            self.state = PipelineState.DISABLED
            self.last_error = str(e)
            raise

        self.state = PipelineState.CONNECTING
        logger.info(f"Connecting to {self.backend.name} transcription: {self.backend.uri}")
        try:
            self._ws = await websockets.connect(
                self.backend.uri,
                additional_headers=self.backend.headers,
                open_timeout=self.connect_timeout,
            )
            await self.backend.on_open(self._ws)
        except (OSError, TimeoutError, WebSocketException) as e:
            self.state = PipelineState.FAILED
            self.last_error = str(e)
            raise TranscriptionConnectionError(self.backend.uri, str(e)) from e

        self._terminated = False
        self.state = PipelineState.STREAMING
        logger.info(f"{self.backend.name} transcription connected")

    async def close(self) -> None:
        """Ask the service to finish and close the connection."""
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        with contextlib.suppress(ConnectionClosed, OSError):
            await self._send_terminate(ws)
            await ws.close()

    async def _send_terminate(self, ws) -> None:
        message = self.backend.terminate_message()
        if message is not None and not self._terminated:
            self._terminated = True
            await ws.send(message)

    # ------------------------------------------------------------------
    # Audio in
    # ------------------------------------------------------------------

    def submit(self, chunk: bytes) -> None:
        """
        Queue captured audio. Safe to call from the capture thread.

        Args:
            chunk: Raw 16-bit PCM audio bytes (mono, 16kHz)
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._enqueue, chunk)

    def _enqueue(self, chunk: bytes | None) -> None:
        if self._audio_queue is None:
            return
        if chunk is _END and self._audio_queue.full():
            # The end marker must always fit
            self._audio_queue.get_nowait()
        try:
            self._audio_queue.put_nowait(chunk)
        except asyncio.QueueFull:
            self.dropped_chunks += 1
            if self.dropped_chunks == 1 or self.dropped_chunks % 100 == 0:
                logger.warning(f"Audio queue full, dropping audio chunk ({self.dropped_chunks} dropped)")

    async def audio_chunks(self) -> AsyncIterator[bytes]:
        """Yield submitted chunks until stop()."""
        if self._audio_queue is None:
            return
        while True:
            chunk = await self._audio_queue.get()
            if chunk is _END:
                return
            yield chunk

    async def forward(self, chunks: AsyncIterable[bytes]) -> None:
        """
        Send every chunk to the open connection.

        Raises:
            PipelineError: connect() has not completed
        """
        if self._ws is None:
            raise PipelineError("forward() called before connect()")
        async for chunk in chunks:
            if not chunk:
                continue
            await self._ws.send(self.backend.encode_audio(chunk))
            self.bytes_sent += len(chunk)

    # ------------------------------------------------------------------
    # Events out
    # ------------------------------------------------------------------

    async def receive(self) -> None:
        """Decode service messages until the connection closes."""
        if self._ws is None:
            raise PipelineError("receive() called before connect()")
        async for message in self._ws:
            try:
                event = self.backend.parse_message(message)
            except TranscriptionServiceError as e:
                logger.error(f"Transcription service error: {e}")
                self.last_error = str(e)
                self._report(e)
                continue
            if event is not None:
                self._emit(event)

    def _emit(self, event: TranscriptEvent) -> None:
        self.events_emitted += 1
        try:
            self.on_event(event)
        except Exception as e:
            logger.error(f"Event handler failed for {event!r}: {e}")

    def _report(self, error: Exception) -> None:
        if self.on_error:
            try:
                self.on_error(error)
            except Exception as e:
                logger.error(f"on_error callback failed: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, chunks: AsyncIterable[bytes] | None = None) -> None:
        """
        Connect, then forward audio and receive events until either side ends.

        Args:
            chunks: Audio source; defaults to chunks passed to submit()
        """
        self._loop = asyncio.get_running_loop()
        self._audio_queue = asyncio.Queue(maxsize=self.queue_size)

        try:
            await self.connect()
        except MissingCredentialError as e:
            logger.error(f"{e}. Transcription disabled, viewers will receive no transcripts.")
            self._report(e)
            return
        except TranscriptionConnectionError as e:
            logger.error(str(e))
            self._report(e)
            return
        finally:
            self._connect_attempted.set()

        source = chunks if chunks is not None else self.audio_chunks()
        forward_task = asyncio.create_task(self.forward(source), name="audio-forward")
        receive_task = asyncio.create_task(self.receive(), name="transcript-receive")

        try:
            done, _ = await asyncio.wait({forward_task, receive_task}, return_when=asyncio.FIRST_COMPLETED)
            if forward_task in done:
                forward_task.result()
                # Audio ended: let the service flush its last turn
                await self._send_terminate(self._ws)
                await asyncio.wait_for(receive_task, timeout=self.drain_timeout)
            else:
                receive_task.result()
                logger.warning("Transcription service closed the connection")
            self.state = PipelineState.STOPPED
        except TimeoutError:
            logger.warning("Timed out waiting for final transcripts")
            self.state = PipelineState.STOPPED
        except (ConnectionClosed, WebSocketException, OSError) as e:
            self.state = PipelineState.FAILED
            self.last_error = str(e)
            logger.error(f"Transcription transport error: {e}")
            self._report(e)
        finally:
            for task in (forward_task, receive_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError, ConnectionClosed):
                        await task
            await self.close()
            logger.info(
                f"Transcription stopped ({self.state.value}): "
                f"{self.bytes_sent} bytes sent, {self.events_emitted} events"
            )

    async def wait_connected(self) -> bool:
        """
        Wait until run() has finished its connection attempt.

        Returns:
            True if the pipeline is streaming
        """
        await self._connect_attempted.wait()
        return self.state == PipelineState.STREAMING

    def stop(self) -> None:
        """End the audio stream. Safe to call from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._enqueue, _END)
