import numpy as np
import pytest

from voice_assistant.core.config import VADConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_frame():
    """Build a read-only frame whose mean absolute level is exactly `level`."""

    def _make(level: int, size: int = VADConfig().frame_samples) -> np.ndarray:
        frame = np.full(size, level, dtype=np.int16)
        frame.flags.writeable = False
        return frame

    return _make


@pytest.fixture
def clock():
    return FakeClock()
