"""
Per-turn capture state and the values it produces.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .buffers import FrameBuffer
from .config import VADConfig
from .errors import SessionClosedError
from .levels import LevelEstimator, NoiseModel

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ADAPTING = "adapting"
    LISTENING = "listening"
    SPEAKING = "speaking"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SessionState.COMPLETED,
            SessionState.ABORTED,
            SessionState.CANCELLED,
        )


@dataclass(frozen=True)
class Utterance:
    """Represents a finished speech utterance."""

    frames: tuple[np.ndarray, ...]
    sample_rate: int
    channels: int = 1

    @property
    def num_frames(self) -> int:
        return len(self.frames)

    @property
    def samples(self) -> np.ndarray:
        """All frames as one flat int16 array."""
        if not self.frames:
            return np.zeros(0, dtype=np.int16)
        return np.concatenate(self.frames)

    @property
    def duration_ms(self) -> float:
        total = sum(frame.size for frame in self.frames) // self.channels
        return total * 1000.0 / self.sample_rate

    def to_bytes(self) -> bytes:
        """Raw little-endian PCM (int16)."""
        return self.samples.astype("<i2").tobytes()


class TurnSignal:
    """
    One-shot completion signal for one session.

    Fired once from the capture thread (or by cancellation), awaited by the
    turn loop. Any number of threads may wait. Never reused across sessions.
    """

    def __init__(self):
        self._done = threading.Event()
        self._outcome: SessionState | None = None
        self._lock = threading.Lock()

    def fire(self, outcome: SessionState) -> None:
        """Publish the outcome. Firing twice raises SessionClosedError."""
        with self._lock:
            if self._done.is_set():
                raise SessionClosedError(
                    f"turn signal already fired ({self._outcome.value})"
                )
            self._outcome = outcome
            self._done.set()

    def wait(self, timeout: float | None = None) -> SessionState | None:
        """Block until the outcome is published; None on timeout."""
        if not self._done.wait(timeout):
            return None
        return self._outcome

    def is_set(self) -> bool:
        return self._done.is_set()


@dataclass
class CaptureSession:
    """
    All mutable state for one listening turn.

    Only the capture thread touches levels, buffers and counters. Other
    threads may call cancel(), which just raises the cancelled flag and
    fires the signal; the capture thread sees the flag on its next frame.
    The signal's outcome is authoritative when the two race.
    """

    levels: LevelEstimator
    buffer: FrameBuffer
    started_at: float
    state: SessionState = SessionState.ADAPTING
    silence_frames: int = 0
    frame_count: int = 0
    dropped_frames: int = 0
    prompt_played: bool = False
    utterance: Utterance | None = None
    signal: TurnSignal = field(default_factory=TurnSignal)
    cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def create(cls, config: VADConfig, now: float) -> "CaptureSession":
        return cls(
            levels=LevelEstimator(config, NoiseModel()),
            buffer=FrameBuffer(config.pre_roll_capacity),
            started_at=now,
        )

    @property
    def noise(self) -> NoiseModel:
        return self.levels.model

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal or self.cancelled.is_set()

    def finish(self, state: SessionState, utterance: Utterance | None = None) -> bool:
        """
        Enter a terminal state, release the buffers and fire the signal.

        Capture thread only. Returns False if a cancel() got there first.
        """
        self.buffer.clear()
        if self.cancelled.is_set():
            return False
        self.state = state
        self.utterance = utterance
        try:
            self.signal.fire(state)
        except SessionClosedError:
            logger.debug("Session cancelled before it could be %s", state.value)
            self.state = SessionState.CANCELLED
            self.utterance = None
            return False
        return True

    def cancel(self) -> bool:
        """Discard the session; never produces an utterance. Safe from any thread."""
        if self.is_terminal:
            return False
        self.cancelled.set()
        try:
            self.signal.fire(SessionState.CANCELLED)
        except SessionClosedError:
            # the capture thread finished the session first
            return False
        self.state = SessionState.CANCELLED
        return True
