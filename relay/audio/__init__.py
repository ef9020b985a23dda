"""Audio capture for the relay."""

from .capture import MicrophoneCapture, list_devices
from .utils import TARGET_SAMPLE_RATE, calculate_chunk_size, resample_audio, stereo_to_mono

__all__ = [
    "TARGET_SAMPLE_RATE",
    "MicrophoneCapture",
    "calculate_chunk_size",
    "list_devices",
    "resample_audio",
    "stereo_to_mono",
]
