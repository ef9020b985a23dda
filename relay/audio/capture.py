"""Microphone capture feeding the audio pipeline."""

import logging
from collections.abc import Callable

from .utils import CHUNK_DURATION_MS, TARGET_SAMPLE_RATE, calculate_chunk_size, resample_audio, stereo_to_mono

logger = logging.getLogger(__name__)


class MicrophoneCapture:
    """
    Capture audio from a microphone using PyAudio.

    The callback receives 16-bit mono PCM at the target rate from PyAudio's
    thread; it must not block (AudioPipeline.submit is safe to pass here).
    """

    def __init__(
        self,
        callback: Callable[[bytes], None],
        device_index: int | None = None,
        target_rate: int = TARGET_SAMPLE_RATE,
        chunk_ms: int = CHUNK_DURATION_MS,
    ):
        """
        Initialize microphone capture.

        Args:
            callback: Function to call with captured audio data
            device_index: Specific input device index, or None for default
            target_rate: Sample rate delivered to the callback
            chunk_ms: Capture buffer duration
        """
        self.callback = callback
        self.device_index = device_index
        self.target_rate = target_rate
        self.chunk_ms = chunk_ms
        self.running = False
        self.pyaudio_instance = None
        self.stream = None
        self.capture_rate = target_rate
        self.capture_channels = 1
        self._device_name = "Microphone"

    @property
    def source_name(self) -> str:
        return self._device_name

    def start(self) -> bool:
        """Start capturing. Returns True on success."""
        try:
            import pyaudio

            self.pyaudio_instance = pyaudio.PyAudio()

            if self.device_index is not None:
                device_info = self.pyaudio_instance.get_device_info_by_index(self.device_index)
            else:
                device_info = self.pyaudio_instance.get_default_input_device_info()

            self._device_name = device_info["name"]
            self.capture_rate = int(device_info["defaultSampleRate"])
            self.capture_channels = 2 if int(device_info["maxInputChannels"]) == 2 else 1

            logger.info(f"Microphone: {self._device_name}")
            logger.info(
                f"Rate: {self.capture_rate}Hz → {self.target_rate}Hz, Channels: {self.capture_channels}"
            )

            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paInt16,
                channels=self.capture_channels,
                rate=self.capture_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=calculate_chunk_size(self.capture_rate, self.chunk_ms),
                stream_callback=self._audio_callback,
            )

            self.stream.start_stream()
            self.running = True
            logger.info("Microphone capture started")
            return True

        except Exception as e:
            logger.error(f"Microphone start failed: {e}")
            self.stop()
            return False

    def _audio_callback(self, in_data, frame_count, time_info, status):
        import pyaudio

        if not self.running:
            return (None, pyaudio.paComplete)

        if status:
            logger.debug(f"Capture status flags: {status}")

        try:
            audio_data = in_data
            if self.capture_channels == 2:
                audio_data = stereo_to_mono(audio_data)
            audio_data = resample_audio(audio_data, self.capture_rate, self.target_rate)
            self.callback(audio_data)
        except Exception as e:
            logger.error(f"Mic callback error: {e}")

        return (None, pyaudio.paContinue)

    def stop(self) -> None:
        was_running = self.running
        self.running = False

        if self.stream:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except Exception as e:
                logger.debug(f"Closing stream failed: {e}")
            self.stream = None

        if self.pyaudio_instance:
            try:
                self.pyaudio_instance.terminate()
            except Exception as e:
                logger.debug(f"Terminating PyAudio failed: {e}")
            self.pyaudio_instance = None

        if was_running:
            logger.info("Microphone capture stopped")


def list_devices() -> list[tuple[int, str, int]]:
    """
    Enumerate input devices.

    Returns:
        (index, name, default sample rate) for every device with input channels
    """
    import pyaudio

    p = pyaudio.PyAudio()
    try:
        devices = []
        for i in range(p.get_device_count()):
            info = p.get_device_info_by_index(i)
            if info["maxInputChannels"] > 0:
                devices.append((i, info["name"], int(info["defaultSampleRate"])))
        return devices
    finally:
        p.terminate()
