"""
Conversation pipeline - orchestrates listen -> transcribe -> reply -> speak turns.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import numpy as np

from .. import config as app_config
from ..config import AppConfig
from ..core.echo_guard import PlaybackFlag
from ..core.errors import CaptureDeviceError
from ..core.session import SessionState, Utterance
from ..core.vad import EventKind, SessionEvent, VoiceActivityDetector
from ..utils import write_wav
from .llm import Reply

logger = logging.getLogger(__name__)


class CaptureSource(Protocol):
    error: BaseException | None

    def start(self) -> None: ...

    def stop(self) -> None: ...


class Recognizer(Protocol):
    def transcribe(self, utterance: Utterance) -> str: ...


class Generator(Protocol):
    def generate(self, text: str) -> Reply: ...


class Speaker(Protocol):
    def say(self, text: str) -> None: ...


CaptureFactory = Callable[[Callable[[np.ndarray], bool]], CaptureSource]


@dataclass
class TurnResult:
    """Outcome of one listening turn."""

    outcome: SessionState
    utterance: Utterance | None = None
    transcript: str | None = None
    reply: Reply | None = None

    @property
    def ends_conversation(self) -> bool:
        if self.outcome is not SessionState.COMPLETED:
            return True
        return self.reply is not None and self.reply.should_end


class RePrompter:
    """
    Plays re-prompt messages on its own thread.

    The capture callback only enqueues; synthesis and playback never run
    on the audio thread.
    """

    def __init__(self, speaker: Speaker, maxsize: int = app_config.REPROMPT_QUEUE_MAX):
        self.speaker = speaker
        self._queue: queue.Queue[str] = queue.Queue(maxsize=maxsize)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the worker thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the worker and drop pending prompts."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=1.0)
            self._thread = None
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def request(self, text: str) -> bool:
        """Non-blocking; returns False when the prompt was dropped."""
        try:
            self._queue.put_nowait(text)
        except queue.Full:
            logger.warning("Dropped re-prompt, player is busy")
            return False
        return True

    def _worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                text = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self.speaker.say(text)
            except Exception as e:
                logger.error("Failed to play prompt: %s", e)


class ConversationPipeline:
    """
    Runs conversation turns until the user leaves.

    Each turn opens the capture source, feeds frames to the detector on the
    capture thread, and waits for the session's one-shot signal. The
    collaborators (recognizer, generator, speaker) are only used between
    turns, from the calling thread.
    """

    def __init__(
        self,
        config: AppConfig,
        capture_factory: CaptureFactory,
        recognizer: Recognizer,
        generator: Generator,
        speaker: Speaker,
        playback: PlaybackFlag | None = None,
        clock: Callable[[], float] = time.monotonic,
        turn_pause_s: float = app_config.TURN_PAUSE_S,
    ):
        self.config = config
        self.capture_factory = capture_factory
        self.recognizer = recognizer
        self.generator = generator
        self.speaker = speaker
        self.playback = playback if playback is not None else PlaybackFlag()
        self.turn_pause_s = turn_pause_s

        self.detector = VoiceActivityDetector(
            config.vad,
            playback=self.playback,
            on_event=self._on_event,
            clock=clock,
            debug_levels=config.debug_levels,
        )
        self.reprompter = RePrompter(speaker)
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Stop after the current turn; cancels a session in progress."""
        self._stop_event.set()
        self.detector.cancel()

    def _on_event(self, event: SessionEvent) -> None:
        # Runs on the capture thread: enqueue only
        if event.kind is EventKind.REPROMPT_REQUESTED:
            self.reprompter.request(self.config.reprompt_message)

    def _on_frame(self, frame: np.ndarray) -> bool:
        session = self.detector.session
        if session is None or session.is_terminal:
            return False
        self.detector.process_frame(frame)
        return not session.is_terminal

    def listen(self) -> tuple[SessionState, Utterance | None]:
        """Capture one utterance (or a timeout/cancellation)."""
        session = self.detector.start_session()
        if self._stop_event.is_set():
            session.cancel()
            return SessionState.CANCELLED, None

        source = self.capture_factory(self._on_frame)
        logger.info("Listening...")
        try:
            source.start()
            while True:
                outcome = session.signal.wait(timeout=0.1)
                if outcome is not None:
                    break
                if source.error is not None:
                    raise source.error
        except (CaptureDeviceError, AssertionError):
            raise
        except Exception as e:
            raise CaptureDeviceError(f"capture failed: {e}") from e
        finally:
            source.stop()
            # no-op once the session reached a terminal state
            session.cancel()
        return outcome, session.utterance

    def _save_wav(self, utterance: Utterance) -> None:
        if not self.config.save_wav:
            return
        logger.info("Saving audio file %s", self.config.save_wav)
        write_wav(
            self.config.save_wav,
            utterance.samples,
            utterance.sample_rate,
            utterance.channels,
        )

    def run_turn(self) -> TurnResult:
        """
        One full turn. Collaborator errors are logged and re-raised as-is.
        """
        outcome, utterance = self.listen()
        result = TurnResult(outcome=outcome, utterance=utterance)
        if outcome is not SessionState.COMPLETED or utterance is None:
            return result

        self._save_wav(utterance)

        try:
            result.transcript = self.recognizer.transcribe(utterance)
        except Exception as e:
            logger.error("Failed to transcribe audio: %s", e)
            raise
        logger.info("You said: %s", result.transcript)

        try:
            result.reply = self.generator.generate(result.transcript)
        except Exception as e:
            logger.error("Failed to generate response: %s", e)
            raise
        logger.info("Assistant: %s", result.reply.text)

        try:
            self.speaker.say(result.reply.text)
        except Exception as e:
            logger.error("Failed to synthesize speech: %s", e)
            raise
        return result

    def run(self) -> TurnResult | None:
        """
        Loop over turns until the conversation ends or stop() is called.

        Returns:
            The last turn result, or None if no turn completed
        """
        last: TurnResult | None = None
        device_failures = 0
        self._stop_event.clear()
        self.reprompter.start()
        try:
            while not self._stop_event.is_set():
                # Small pause to separate conversation turns
                time.sleep(self.turn_pause_s)
                try:
                    last = self.run_turn()
                except CaptureDeviceError as e:
                    device_failures += 1
                    logger.error("Failed to record audio: %s", e)
                    if device_failures >= self.config.device_retries:
                        raise
                    continue
                except AssertionError as e:
                    logger.error("Invalid audio frame: %s", e)
                    raise
                except Exception:
                    # collaborator errors are logged by run_turn
                    continue
                device_failures = 0

                if last.outcome is SessionState.ABORTED:
                    logger.info("No response received, ending conversation")
                    break
                if last.outcome is SessionState.CANCELLED:
                    break
                if last.ends_conversation:
                    logger.info("Goodbye! Conversation ended.")
                    break
        finally:
            self.reprompter.stop()
        return last
