"""
Pre-roll and speech accumulation buffers.
"""

from collections import deque

import numpy as np


class FrameBuffer:
    """
    Rolling pre-roll window plus the speech accumulation buffer.

    The pre-roll keeps the last few frames before a trigger so the
    first syllable is not lost between detection and reaction.
    """

    def __init__(self, pre_roll_capacity: int):
        self.pre_roll: deque[np.ndarray] = deque(maxlen=max(1, pre_roll_capacity))
        self.speech: list[np.ndarray] = []
        self._collecting = False

    @property
    def capacity(self) -> int:
        return self.pre_roll.maxlen or 0

    @property
    def collecting(self) -> bool:
        return self._collecting

    def push_pre_roll(self, frame: np.ndarray) -> None:
        """Add a frame before speech is confirmed (oldest evicted first)."""
        if self._collecting:
            raise RuntimeError("pre-roll is inactive once speech is confirmed")
        self.pre_roll.append(frame)

    def start_speech(self) -> None:
        """Seed the accumulation buffer from the pre-roll."""
        self.speech = list(self.pre_roll)
        self.pre_roll.clear()
        self._collecting = True

    def append_speech(self, frame: np.ndarray) -> None:
        self.speech.append(frame)

    def take_speech(self) -> list[np.ndarray]:
        """Hand over the accumulated frames and release the buffer."""
        frames = self.speech
        self.speech = []
        return frames

    def clear(self) -> None:
        self.pre_roll.clear()
        self.speech = []
        self._collecting = False

    def __len__(self) -> int:
        return len(self.speech) if self._collecting else len(self.pre_roll)
