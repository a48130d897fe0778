"""
Application configuration loaded from the environment (and an optional .env).
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core import config as core_config
from .core.config import VADConfig
from .core.errors import ConfigError

logger = logging.getLogger(__name__)

# -------------------------
# DEFAULTS
# -------------------------
OPENAI_MODEL = "gpt-4o-mini"
RECOGNIZERS = ("parakeet", "whisper")
ASR_MODEL = "nvidia/parakeet-tdt-0.6b-v2"
TTS_VOICE = "af_heart"
TTS_SPEED = 1.0
REPROMPT_MESSAGE = "are you there?"
HISTORY_LIMIT = 10  # messages kept besides the system prompt
DEVICE_RETRIES = 3  # consecutive capture failures before giving up
TURN_PAUSE_S = 0.1  # pause between conversation turns
REPROMPT_QUEUE_MAX = 4
ENV_FILE = ".env"


@dataclass(frozen=True)
class AppConfig:
    openai_api_key: str | None = None
    openai_model: str = OPENAI_MODEL
    recognizer: str = "parakeet"
    asr_model: str = ASR_MODEL
    tts_voice: str = TTS_VOICE
    tts_speed: float = TTS_SPEED
    tts_gpu: bool = False
    reprompt_message: str = REPROMPT_MESSAGE
    system_prompt: str | None = None
    history_limit: int = HISTORY_LIMIT
    save_wav: str | None = None
    log_level: str = "INFO"
    debug_levels: bool = False
    device_retries: int = DEVICE_RETRIES
    vad: VADConfig = field(default_factory=VADConfig)

    def validate(self) -> "AppConfig":
        errs = []
        if not self.openai_api_key:
            errs.append("OPENAI_API_KEY is required")
        if self.recognizer not in RECOGNIZERS:
            errs.append(
                f"RECOGNIZER must be one of {', '.join(RECOGNIZERS)} (got {self.recognizer})"
            )
        if self.history_limit < 0:
            errs.append(f"HISTORY_LIMIT must be >= 0 (got {self.history_limit})")
        if self.device_retries < 1:
            errs.append(f"DEVICE_RETRIES must be >= 1 (got {self.device_retries})")
        if errs:
            raise ConfigError("Configuration validation failed:\n" + "\n".join(errs))
        self.vad.validate()
        return self

    def with_overrides(self, **changes) -> "AppConfig":
        """Copy with the non-None values replaced (used for CLI flags)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


class Settings(BaseSettings):
    """Raw settings, one field per environment variable (case-insensitive)."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    openai_api_key: str | None = None
    openai_model: str = OPENAI_MODEL
    recognizer: str = "parakeet"
    asr_model: str = ASR_MODEL
    tts_voice: str = TTS_VOICE
    tts_speed: float = TTS_SPEED
    tts_gpu: bool = False
    reprompt_message: str = REPROMPT_MESSAGE
    system_prompt: str | None = None
    history_limit: int = HISTORY_LIMIT
    save_wav: str | None = None
    log_level: str = "INFO"
    debug_levels: bool = False
    device_retries: int = DEVICE_RETRIES

    # Audio / VAD
    sample_rate: int = core_config.SAMPLE_RATE
    frames_per_buffer: int = core_config.FRAMES_PER_BUFFER
    channels: int = core_config.CHANNELS
    vad_pre_roll_seconds: float = core_config.PRE_ROLL_SECONDS
    vad_long_term_alpha: float = core_config.LONG_TERM_ALPHA
    vad_current_alpha: float = core_config.CURRENT_ALPHA
    vad_start_multiplier: float = core_config.VOICE_START_MULTIPLIER
    vad_end_multiplier: float = core_config.VOICE_END_MULTIPLIER
    vad_min_noise_floor: float = core_config.MIN_NOISE_FLOOR
    vad_adaptation_frames: int = core_config.ADAPTATION_FRAMES
    vad_echo_guard_level: float = core_config.ECHO_GUARD_LEVEL
    vad_timeout_s: float = core_config.NO_VOICE_TIMEOUT_S
    vad_silence_hysteresis: int = core_config.SILENCE_HYSTERESIS

    @field_validator("recognizer")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    def vad_config(self) -> VADConfig:
        return VADConfig(
            sample_rate=self.sample_rate,
            frames_per_buffer=self.frames_per_buffer,
            channels=self.channels,
            pre_roll_seconds=self.vad_pre_roll_seconds,
            long_term_alpha=self.vad_long_term_alpha,
            current_alpha=self.vad_current_alpha,
            voice_start_multiplier=self.vad_start_multiplier,
            voice_end_multiplier=self.vad_end_multiplier,
            min_noise_floor=self.vad_min_noise_floor,
            adaptation_frames=self.vad_adaptation_frames,
            echo_guard_level=self.vad_echo_guard_level,
            no_voice_timeout_s=self.vad_timeout_s,
            silence_hysteresis=self.vad_silence_hysteresis,
        )

    def app_config(self) -> AppConfig:
        return AppConfig(
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            recognizer=self.recognizer,
            asr_model=self.asr_model,
            tts_voice=self.tts_voice,
            tts_speed=self.tts_speed,
            tts_gpu=self.tts_gpu,
            reprompt_message=self.reprompt_message,
            system_prompt=self.system_prompt,
            history_limit=self.history_limit,
            save_wav=self.save_wav,
            log_level=self.log_level,
            debug_levels=self.debug_levels,
            device_retries=self.device_retries,
            vad=self.vad_config(),
        )


def _describe(error: ValidationError) -> str:
    lines = []
    for err in error.errors():
        name = ".".join(str(part) for part in err["loc"]).upper()
        lines.append(f"{name}: {err['msg']} (got {err.get('input')!r})")
    return "Configuration validation failed:\n" + "\n".join(lines)


def load_config(env_file: str | None = ENV_FILE) -> AppConfig:
    """
    Build the application config.

    Args:
        env_file: Optional .env file read before the process environment
            is applied on top; None reads the environment only

    Returns:
        Unvalidated AppConfig (call validate() once CLI overrides are applied)
    """
    if env_file is not None and not Path(env_file).exists():
        logger.warning("%s file not found, using environment variables", env_file)
        env_file = None
    try:
        settings = Settings(_env_file=env_file)
    except ValidationError as e:
        raise ConfigError(_describe(e)) from e
    return settings.app_config()
