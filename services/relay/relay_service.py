"""
Caption Relay Service

Captures microphone audio, streams it to a transcription service and pushes
partial/final transcripts to every connected viewer over Server-Sent Events.

Endpoints:
- GET /health  - Health check (pipeline state, subscriber count)
- GET /events  - SSE transcript stream

Protocol (/events):
1. Viewer connects; first frame is ": connected" (plus a "retry:" hint)
2. Server pushes data: {"type": "partial"|"final", "text": "..."}
3. Server sends ": keep-alive" comments every KEEPALIVE_INTERVAL seconds

Without ASSEMBLYAI_API_KEY (and TRANSCRIPTION_BACKEND=assemblyai) the service
still serves viewers but never produces transcripts.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from relay import __version__
from relay.config import RelaySettings
from relay.core import BroadcastHub, MissingCredentialError
from relay.pipeline import AudioPipeline, PipelineState, create_backend
from relay.utils import setup_logging, uvicorn_log_config

# Configure logging
logger = setup_logging(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ==============================================================================
# Transcription
# ==============================================================================


async def run_transcription(app: FastAPI) -> None:
    """Run capture + pipeline until shutdown. Failures leave viewers connected."""
    settings: RelaySettings = app.state.settings
    pipeline: AudioPipeline = app.state.pipeline

    try:
        pipeline.backend.validate()
    except MissingCredentialError as e:
        pipeline.state = PipelineState.DISABLED
        pipeline.last_error = str(e)
        logger.error(f"{e}. Serving viewers without transcription.")
        return

    # Imported here so the service runs without audio libraries in degraded mode
    from relay.audio import MicrophoneCapture

    capture = MicrophoneCapture(
        callback=pipeline.submit,
        device_index=settings.audio_device_index,
        target_rate=settings.sample_rate,
        chunk_ms=settings.chunk_ms,
    )
    app.state.capture = capture

    pipeline_task = asyncio.create_task(pipeline.run(), name="audio-pipeline")
    try:
        # Audio is only captured once the connection is up
        if await pipeline.wait_connected() and not capture.start():
            logger.error("Microphone unavailable, stopping transcription")
            pipeline.stop()
        await pipeline_task
    except Exception as e:
        pipeline.state = PipelineState.FAILED
        pipeline.last_error = str(e)
        logger.exception(f"Transcription task crashed: {e}")
    finally:
        capture.stop()
        if not pipeline_task.done():
            pipeline_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pipeline_task


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    settings = app.state.settings = RelaySettings.from_env()
    hub = app.state.hub = BroadcastHub(
        keepalive_interval=settings.keepalive_interval,
        queue_size=settings.subscriber_queue_size,
        retry_ms=settings.client_retry_ms,
    )
    app.state.pipeline = AudioPipeline(
        backend=create_backend(settings),
        on_event=hub.broadcast,
        queue_size=settings.audio_queue_size,
        connect_timeout=settings.connect_timeout,
    )
    app.state.capture = None
    transcription_task = asyncio.create_task(run_transcription(app), name="transcription")
    logger.info(f"Relay ready (backend: {settings.backend}, keepalive: {settings.keepalive_interval}s)")

    yield

    # --- Shutdown ---
    transcription_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await transcription_task
    hub.close()


# ==============================================================================
# FastAPI Application
# ==============================================================================

app = FastAPI(
    title="Caption Relay",
    description="Live transcript fan-out over Server-Sent Events",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/health")
async def health(request: Request):
    """Health check endpoint."""
    state = request.app.state
    pipeline: AudioPipeline = state.pipeline
    transcribing = pipeline.state in (PipelineState.CONNECTING, PipelineState.STREAMING)
    return {
        "status": "healthy" if transcribing else "degraded",
        "backend": state.settings.backend,
        "transcription": {
            "state": pipeline.state.value,
            "error": pipeline.last_error,
            "events": pipeline.events_emitted,
            "dropped_chunks": pipeline.dropped_chunks,
        },
        "subscribers": state.hub.subscriber_count,
        "keepalive_interval": state.hub.keepalive_interval,
        "version": __version__,
    }


async def event_stream(hub: BroadcastHub) -> AsyncIterator[str]:
    """Register a subscriber and write its frames; unregister however the stream ends."""
    subscriber = hub.register()
    try:
        async for frame in subscriber.frames():
            yield frame
    finally:
        hub.unregister(subscriber)


@app.get("/events")
async def events(request: Request):
    """
    SSE transcript stream.

    Registration happens when the response starts streaming; disconnects
    cancel the generator and its finally block unregisters the subscriber.
    """
    return StreamingResponse(
        event_stream(request.app.state.hub),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ==============================================================================
# Main Entry Point
# ==============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = RelaySettings.from_env()
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=uvicorn_log_config(settings.log_level))
