"""
Suppression of our own playback leaking into the microphone.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

import numpy as np

from ..utils import frame_level


class PlaybackFlag:
    """
    Thread-safe "audio is playing" flag.

    Set by the player thread, read by the capture callback. This is the
    only state shared between the two.
    """

    def __init__(self):
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    def is_set(self) -> bool:
        return self._event.is_set()

    @contextmanager
    def playing(self) -> Iterator[None]:
        """Hold the flag for the duration of a playback."""
        self._event.set()
        try:
            yield
        finally:
            self._event.clear()


class EchoGuard:
    """Drops loud frames captured while the assistant is speaking."""

    def __init__(self, max_playback_level: float):
        self.max_playback_level = max_playback_level

    def should_drop(self, frame: np.ndarray, is_playing: bool) -> bool:
        if not is_playing:
            return False
        return self.should_drop_level(frame_level(frame), is_playing)

    def should_drop_level(self, level: float, is_playing: bool) -> bool:
        return is_playing and level > self.max_playback_level
