"""
Microphone input interface using PyAudio.
"""

import logging
from typing import Protocol

import numpy as np
import pyaudio

from ..core import config
from ..core.errors import CaptureDeviceError
from ..utils import float_to_int16

logger = logging.getLogger(__name__)


class FrameCallback(Protocol):
    """Receives one int16 frame; returns False to stop capturing."""

    def __call__(self, frame: np.ndarray) -> bool: ...


class MicrophoneInput:
    """
    Microphone input using PyAudio.

    Captures normalized float audio from the default microphone, converts
    each buffer to an int16 frame and hands it to a callback on the
    PyAudio callback thread.
    """

    def __init__(
        self,
        on_frame: FrameCallback | None = None,
        sample_rate: int = config.SAMPLE_RATE,
        frames_per_buffer: int = config.FRAMES_PER_BUFFER,
        channels: int = config.CHANNELS,
    ):
        self.on_frame = on_frame
        self.sample_rate = sample_rate
        self.frames_per_buffer = frames_per_buffer
        self.channels = channels

        self.error: BaseException | None = None
        self._pa: pyaudio.PyAudio | None = None
        self._stream: pyaudio.Stream | None = None

    def _callback(
        self,
        in_data: bytes | None,
        frame_count: int,
        time_info: dict[str, float],
        status_flags: int,
    ) -> tuple[None, int]:
        """PyAudio callback."""
        if in_data is None or self.on_frame is None:
            return (None, pyaudio.paContinue)
        try:
            frame = float_to_int16(np.frombuffer(in_data, dtype=np.float32))
            keep_going = self.on_frame(frame)
        except BaseException as e:
            # Don't crash the audio thread; the owner re-raises from error
            self.error = e
            return (None, pyaudio.paAbort)
        return (None, pyaudio.paContinue if keep_going else pyaudio.paComplete)

    def start(self) -> None:
        """Start capturing audio from microphone."""
        if self._stream is not None:
            return  # Already running

        self.error = None
        self._pa = pyaudio.PyAudio()
        try:
            info = self._pa.get_default_input_device_info()
            logger.info("Using input device: %s", info.get("name"))
            self._stream = self._pa.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=self._callback,
            )
            self._stream.start_stream()
        except OSError as e:
            self.stop()
            raise CaptureDeviceError(f"failed to open input stream: {e}") from e

    def stop(self) -> None:
        """Stop capturing audio."""
        if self._stream is not None:
            try:
                if self._stream.is_active():
                    self._stream.stop_stream()
            finally:
                self._stream.close()
                self._stream = None

        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
