"""
Core configuration for voice activity detection.
These are transport-agnostic settings.
"""

from dataclasses import dataclass

from .errors import ConfigError

# -------------------------
# AUDIO CONFIG
# -------------------------
SAMPLE_RATE = 16000
FRAMES_PER_BUFFER = 512  # ~32 ms per frame at 16 kHz
CHANNELS = 1
SAMPLE_WIDTH = 2  # bytes per sample (int16)

# -------------------------
# NOISE MODEL
# -------------------------
LONG_TERM_ALPHA = 0.995  # slow adaptation for background noise
CURRENT_ALPHA = 0.920  # fast adaptation for current level
MIN_NOISE_FLOOR = 100.0  # prevents false triggers in a silent room

# -------------------------
# DETECTION THRESHOLDS
# -------------------------
VOICE_START_MULTIPLIER = 2.5  # over long-term noise to start
VOICE_END_MULTIPLIER = 1.5  # over ambient noise to keep speaking
ADAPTATION_FRAMES = 50  # warm-up before any trigger
SILENCE_HYSTERESIS = 10  # consecutive quiet frames before end of speech
PRE_ROLL_SECONDS = 0.5

# -------------------------
# ECHO GUARD / TIMEOUT
# -------------------------
ECHO_GUARD_LEVEL = 10000.0  # above this while playing, assume our own playback
NO_VOICE_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class VADConfig:
    """
    Immutable tuning values for one detector.
    Built once at startup and passed to each component.
    """

    sample_rate: int = SAMPLE_RATE
    frames_per_buffer: int = FRAMES_PER_BUFFER
    channels: int = CHANNELS
    pre_roll_seconds: float = PRE_ROLL_SECONDS
    long_term_alpha: float = LONG_TERM_ALPHA
    current_alpha: float = CURRENT_ALPHA
    voice_start_multiplier: float = VOICE_START_MULTIPLIER
    voice_end_multiplier: float = VOICE_END_MULTIPLIER
    min_noise_floor: float = MIN_NOISE_FLOOR
    adaptation_frames: int = ADAPTATION_FRAMES
    echo_guard_level: float = ECHO_GUARD_LEVEL
    no_voice_timeout_s: float = NO_VOICE_TIMEOUT_S
    silence_hysteresis: int = SILENCE_HYSTERESIS

    @property
    def frame_samples(self) -> int:
        """Number of int16 samples in one captured frame."""
        return self.frames_per_buffer * self.channels

    @property
    def frame_duration_ms(self) -> float:
        return self.frames_per_buffer * 1000.0 / self.sample_rate

    @property
    def pre_roll_capacity(self) -> int:
        frames_per_second = self.sample_rate / self.frames_per_buffer
        return max(1, round(frames_per_second * self.pre_roll_seconds))

    def validate(self) -> "VADConfig":
        errs = []
        if self.sample_rate <= 0:
            errs.append(f"sample_rate must be > 0 (got {self.sample_rate})")
        if self.frames_per_buffer <= 0:
            errs.append(
                f"frames_per_buffer must be > 0 (got {self.frames_per_buffer})"
            )
        if self.channels < 1:
            errs.append(f"channels must be >= 1 (got {self.channels})")
        if self.pre_roll_seconds < 0:
            errs.append(
                f"pre_roll_seconds must be >= 0 (got {self.pre_roll_seconds})"
            )
        for name in ("long_term_alpha", "current_alpha"):
            value = getattr(self, name)
            if not 0.0 <= value < 1.0:
                errs.append(f"{name} must be in [0, 1) (got {value})")
        if self.voice_start_multiplier <= 0 or self.voice_end_multiplier <= 0:
            errs.append("voice start/end multipliers must be > 0")
        if self.min_noise_floor < 0:
            errs.append(f"min_noise_floor must be >= 0 (got {self.min_noise_floor})")
        if self.adaptation_frames < 0:
            errs.append(
                f"adaptation_frames must be >= 0 (got {self.adaptation_frames})"
            )
        if self.no_voice_timeout_s <= 0:
            errs.append(
                f"no_voice_timeout_s must be > 0 (got {self.no_voice_timeout_s})"
            )
        if self.silence_hysteresis < 0:
            errs.append(
                f"silence_hysteresis must be >= 0 (got {self.silence_hysteresis})"
            )
        if errs:
            raise ConfigError("VAD configuration invalid:\n" + "\n".join(errs))
        return self
