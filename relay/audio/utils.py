"""Audio helpers: resample to the transcription rate and downmix to mono."""

from math import gcd

import numpy as np
from scipy import signal

# Audio settings
TARGET_SAMPLE_RATE = 16000
CHUNK_DURATION_MS = 100


def resample_audio(audio_data: bytes, from_rate: int, to_rate: int) -> bytes:
    """
    Resample 16-bit PCM using polyphase filtering.

    Args:
        audio_data: Raw 16-bit PCM audio bytes
        from_rate: Source sample rate in Hz
        to_rate: Target sample rate in Hz

    Returns:
        Resampled audio as bytes
    """
    if from_rate == to_rate or not audio_data:
        return audio_data

    audio_np = np.frombuffer(audio_data, dtype=np.int16).astype(np.float32)
    g = gcd(from_rate, to_rate)
    resampled = signal.resample_poly(audio_np, to_rate // g, from_rate // g)
    return np.clip(resampled, -32768, 32767).astype(np.int16).tobytes()


def stereo_to_mono(audio_data: bytes) -> bytes:
    """Average interleaved L/R 16-bit samples into mono."""
    stereo = np.frombuffer(audio_data, dtype=np.int16)
    left = stereo[0::2].astype(np.int32)
    right = stereo[1::2].astype(np.int32)
    return ((left + right) // 2).astype(np.int16).tobytes()


def calculate_chunk_size(sample_rate: int, duration_ms: int = CHUNK_DURATION_MS) -> int:
    """Calculate chunk size in samples for given duration."""
    return int(sample_rate * duration_ms / 1000)
