#!/usr/bin/env python3
"""
Voice conversation loop with energy-based voice activity detection.

- pyaudio callback -> VAD state machine (noise adaptation, pre-roll, hysteresis)
- finished utterance -> ASR (NeMo Parakeet or OpenAI Whisper)
- transcript -> OpenAI chat reply with an end-of-conversation tool
- reply -> Kokoro TTS -> speaker, with the echo guard raised while playing
"""

import argparse
import logging
import sys

from openai import OpenAI

from .app.llm import DEFAULT_SYSTEM_PROMPT, ResponseGenerator
from .app.pipeline import ConversationPipeline
from .config import RECOGNIZERS, AppConfig, load_config
from .core.asr import ASREngine, WhisperRecognizer
from .core.echo_guard import PlaybackFlag
from .core.errors import CaptureDeviceError, ConfigError
from .interfaces.microphone import MicrophoneInput
from .interfaces.speaker import KokoroSynthesizer, SpeechPlayer

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--save-wav", metavar="PATH", help="write each utterance to PATH")
    parser.add_argument("--recognizer", choices=RECOGNIZERS, help="speech recognizer")
    parser.add_argument("--log-level", help="logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument(
        "--debug-levels",
        action="store_true",
        default=None,
        help="log per-frame audio levels and thresholds",
    )
    return parser.parse_args(argv)


def build_pipeline(cfg: AppConfig) -> ConversationPipeline:
    """Create the collaborators and wire them into a pipeline."""
    client = OpenAI(api_key=cfg.openai_api_key)

    if cfg.recognizer == "whisper":
        recognizer = WhisperRecognizer(client)
    else:
        recognizer = ASREngine(cfg.asr_model)

    generator = ResponseGenerator(
        client,
        model=cfg.openai_model,
        system_prompt=cfg.system_prompt or DEFAULT_SYSTEM_PROMPT,
        history_limit=cfg.history_limit,
    )

    playback = PlaybackFlag()
    speaker = SpeechPlayer(
        KokoroSynthesizer(voice=cfg.tts_voice, speed=cfg.tts_speed, use_gpu=cfg.tts_gpu),
        playback=playback,
    )

    def capture_factory(on_frame):
        return MicrophoneInput(
            on_frame=on_frame,
            sample_rate=cfg.vad.sample_rate,
            frames_per_buffer=cfg.vad.frames_per_buffer,
            channels=cfg.vad.channels,
        )

    return ConversationPipeline(
        cfg,
        capture_factory=capture_factory,
        recognizer=recognizer,
        generator=generator,
        speaker=speaker,
        playback=playback,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the voice assistant."""
    args = parse_args(argv)
    try:
        cfg = load_config().with_overrides(
            save_wav=args.save_wav,
            recognizer=args.recognizer,
            log_level=args.log_level.upper() if args.log_level else None,
            debug_levels=args.debug_levels,
        )
        logging.basicConfig(
            level=cfg.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        cfg.validate()
    except (ConfigError, ValueError) as e:
        logging.basicConfig()
        logger.error("Failed to load configuration: %s", e)
        return 1

    logger.info(
        "Audio settings: sample rate %d Hz, frames per buffer %d, channels %d",
        cfg.vad.sample_rate,
        cfg.vad.frames_per_buffer,
        cfg.vad.channels,
    )

    pipeline = build_pipeline(cfg)
    logger.info("Conversation started! Start speaking when you see 'Listening...'")
    try:
        pipeline.run()
    except CaptureDeviceError as e:
        logger.error("Giving up on the capture device: %s", e)
        return 1
    except KeyboardInterrupt:
        pipeline.stop()
        logger.info("Stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
