"""
Voice Activity Detection (VAD) state machine.
Consumes captured frames one at a time and assembles an utterance.
This module is independent of any transport or UI.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np

from ..utils import frame_level
from .config import VADConfig
from .echo_guard import EchoGuard, PlaybackFlag
from .errors import MalformedFrameError, SessionClosedError
from .levels import NoiseModel
from .session import CaptureSession, SessionState, Utterance
from .timeout import TimeoutAction, TimeoutMonitor

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    VOICE_DETECTED = "voice_detected"
    REPROMPT_REQUESTED = "reprompt_requested"
    SESSION_ABORTED = "session_aborted"
    UTTERANCE_READY = "utterance_ready"


@dataclass(frozen=True)
class SessionEvent:
    """Something the turn loop needs to know about."""

    kind: EventKind
    frame_index: int
    utterance: Utterance | None = None


class VoiceActivityDetector:
    """
    Energy-based voice activity detector.

    Runs inside the capture callback: every call is synchronous and does
    no I/O. Blocking reactions to events (playing a re-prompt) are the
    caller's job and must happen on another thread.

    Frames go through the echo guard, then update the noise model, then
    drive the ADAPTING -> LISTENING -> SPEAKING -> COMPLETED state machine.
    While no speech is confirmed the no-voice timeout may request one
    re-prompt and later abort the session.
    """

    def __init__(
        self,
        config: VADConfig,
        playback: PlaybackFlag | None = None,
        on_event: Callable[[SessionEvent], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        debug_levels: bool = False,
    ):
        self.config = config
        self.playback = playback if playback is not None else PlaybackFlag()
        self.on_event = on_event
        self.clock = clock
        self.debug_levels = debug_levels

        self.echo_guard = EchoGuard(config.echo_guard_level)
        self.timeout = TimeoutMonitor(config.no_voice_timeout_s)
        self.session: CaptureSession | None = None

    def start_session(self) -> CaptureSession:
        """Begin a new turn, discarding any session still in progress."""
        if self.session is not None:
            self.session.cancel()
        self.session = CaptureSession.create(self.config, self.clock())
        return self.session

    def cancel(self) -> bool:
        """Cancel the live session, if any."""
        if self.session is None:
            return False
        return self.session.cancel()

    def start_threshold(self, noise: NoiseModel) -> float:
        return max(
            noise.long_term_level * self.config.voice_start_multiplier,
            self.config.min_noise_floor,
        )

    def end_threshold(self, noise: NoiseModel) -> float:
        return max(
            noise.ambient_level * self.config.voice_end_multiplier,
            self.config.min_noise_floor / 2,
        )

    def process_frame(self, frame: np.ndarray) -> SessionEvent | None:
        """
        Process one captured frame.

        Args:
            frame: int16 samples, exactly frames_per_buffer * channels long

        Returns:
            The event produced by this frame, if any
        """
        session = self.session
        if session is None:
            raise SessionClosedError("no capture session started")
        if session.is_terminal:
            raise SessionClosedError(f"capture session already {session.state.value}")
        if frame.size != self.config.frame_samples:
            raise MalformedFrameError(
                f"expected {self.config.frame_samples} samples, got {frame.size}"
            )

        level = frame_level(frame)
        if self.echo_guard.should_drop_level(level, self.playback.is_set()):
            session.dropped_frames += 1
            return None

        _, long_term, current = session.levels.observe_level(level)
        session.frame_count += 1

        if self.debug_levels:
            logger.debug(
                "levels frame=%d instant=%.2f current=%.2f noise=%.2f start=%.2f end=%.2f",
                session.frame_count,
                level,
                current,
                long_term,
                self.start_threshold(session.noise),
                self.end_threshold(session.noise),
            )

        if session.state is SessionState.SPEAKING:
            return self._track_speech(session, frame, current)
        return self._wait_for_voice(session, frame, current)

    def _wait_for_voice(
        self, session: CaptureSession, frame: np.ndarray, current: float
    ) -> SessionEvent | None:
        now = self.clock()
        action = self.timeout.check(now, session.started_at, session.prompt_played)

        if action is TimeoutAction.ABORT:
            logger.info("No response received, stopping")
            if not session.finish(SessionState.ABORTED):
                return None
            return self._emit(
                SessionEvent(EventKind.SESSION_ABORTED, session.frame_count)
            )

        if action is TimeoutAction.REPROMPT:
            logger.info(
                "No voice detected for %.1fs, re-prompting",
                self.config.no_voice_timeout_s,
            )
            session.buffer.push_pre_roll(frame)
            session.prompt_played = True
            session.started_at = now
            return self._emit(
                SessionEvent(EventKind.REPROMPT_REQUESTED, session.frame_count)
            )

        if session.state is SessionState.ADAPTING:
            if session.frame_count < self.config.adaptation_frames:
                session.buffer.push_pre_roll(frame)
                return None
            session.state = SessionState.LISTENING

        if current <= self.start_threshold(session.noise):
            session.buffer.push_pre_roll(frame)
            return None

        session.levels.freeze_ambient()
        session.buffer.start_speech()
        session.buffer.append_speech(frame)
        session.silence_frames = 0
        session.state = SessionState.SPEAKING
        logger.info("Voice activity detected")
        return self._emit(SessionEvent(EventKind.VOICE_DETECTED, session.frame_count))

    def _track_speech(
        self, session: CaptureSession, frame: np.ndarray, current: float
    ) -> SessionEvent | None:
        session.buffer.append_speech(frame)

        if current >= self.end_threshold(session.noise):
            session.silence_frames = 0
            return None

        # Several quiet frames in a row, so short pauses do not cut speech off
        session.silence_frames += 1
        if session.silence_frames <= self.config.silence_hysteresis:
            return None

        utterance = Utterance(
            frames=tuple(session.buffer.take_speech()),
            sample_rate=self.config.sample_rate,
            channels=self.config.channels,
        )
        if not session.finish(SessionState.COMPLETED, utterance):
            return None
        logger.info(
            "Voice activity ended: %d frames, %.0f ms",
            utterance.num_frames,
            utterance.duration_ms,
        )
        return self._emit(
            SessionEvent(EventKind.UTTERANCE_READY, session.frame_count, utterance)
        )

    def _emit(self, event: SessionEvent) -> SessionEvent:
        if self.on_event:
            self.on_event(event)
        return event
