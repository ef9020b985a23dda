"""
Relay Audio Pipeline

Forwards captured audio to a transcription backend and emits transcript events.
"""

from .audio import AudioPipeline, PipelineState
from .backends import AssemblyAIBackend, LocalASRBackend, TranscriptionBackend, create_backend

__all__ = [
    "AssemblyAIBackend",
    "AudioPipeline",
    "LocalASRBackend",
    "PipelineState",
    "TranscriptionBackend",
    "create_backend",
]
