"""
Utility functions for audio processing.
"""

import wave
from typing import BinaryIO

import numpy as np

INT16_MAX = 32767


def float_to_int16(samples: np.ndarray) -> np.ndarray:
    """Convert normalized float samples in [-1, 1] to a read-only int16 frame."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    frame = (clipped * INT16_MAX).astype(np.int16)
    frame.flags.writeable = False
    return frame


def frame_level(frame: np.ndarray) -> float:
    """Mean absolute sample value of a frame."""
    if frame.size == 0:
        return 0.0
    return float(np.abs(frame.astype(np.float64)).mean())


def write_wav(
    target: str | BinaryIO,
    samples: np.ndarray,
    sample_rate: int,
    channels: int = 1,
) -> None:
    """Write int16 samples as a 16-bit PCM WAV file (path or file object)."""
    pcm = np.asarray(samples, dtype="<i2")
    with wave.open(target, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())
