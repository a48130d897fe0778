"""
Speech synthesis with Kokoro TTS and playback through PyAudio.
"""

import logging
import threading
import time

import numpy as np
import pyaudio
from kokoro import KModel, KPipeline

from ..core.echo_guard import PlaybackFlag
from ..utils import float_to_int16

logger = logging.getLogger(__name__)


class KokoroSynthesizer:
    """Text-to-speech with Kokoro; returns float32 mono audio."""

    sample_rate = 24000

    def __init__(self, voice: str = "af_heart", speed: float = 1.0, use_gpu: bool = False):
        """
        Args:
            voice: Voice preset (e.g., 'af_heart', 'af_bella', 'am_michael')
            speed: Speech speed multiplier (0.5 - 2.0)
            use_gpu: Whether to use GPU (if available)
        """
        logger.info("Loading Kokoro TTS model (voice=%s)...", voice)
        self.voice = voice
        self.speed = speed
        self.lang_code = voice[0]  # 'a' for American, 'b' for British

        device = "cuda" if use_gpu else "cpu"
        self.model = KModel().to(device).eval()
        self.pipeline = KPipeline(lang_code=self.lang_code, model=False)
        self.voice_pack = self.pipeline.load_voice(voice)

    def synthesize(self, text: str) -> np.ndarray:
        if not text or not text.strip():
            return np.zeros(0, dtype=np.float32)

        chunks = []
        for _, ps, _ in self.pipeline(text, self.voice, self.speed):
            ref_s = self.voice_pack[len(ps) - 1]
            audio = self.model(ps, ref_s, self.speed)
            chunks.append(audio.detach().cpu().numpy().astype(np.float32))
        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks)


class SpeechPlayer:
    """
    Speaks text and raises the playback flag while audio is playing.

    The capture side reads the same flag to ignore our own voice.
    """

    def __init__(
        self,
        synthesizer: KokoroSynthesizer,
        playback: PlaybackFlag | None = None,
        settle_s: float = 0.1,
    ):
        self.synthesizer = synthesizer
        self.playback = playback if playback is not None else PlaybackFlag()
        self.settle_s = settle_s
        self._lock = threading.Lock()

    @property
    def is_playing(self) -> bool:
        return self.playback.is_set()

    def play(self, audio: np.ndarray, sample_rate: int) -> None:
        """Play float audio to the default output device (blocking)."""
        pcm = float_to_int16(audio).tobytes()
        with self._lock:
            pa = pyaudio.PyAudio()
            try:
                with self.playback.playing():
                    stream = pa.open(
                        format=pyaudio.paInt16,
                        channels=1,
                        rate=sample_rate,
                        output=True,
                    )
                    try:
                        stream.write(pcm)
                    finally:
                        stream.stop_stream()
                        stream.close()
            finally:
                pa.terminate()
            # let the audio system settle before capture trusts the mic again
            time.sleep(self.settle_s)

    def say(self, text: str) -> None:
        """Synthesize and play text."""
        audio = self.synthesizer.synthesize(text)
        if audio.size == 0:
            return
        self.play(audio, self.synthesizer.sample_rate)
