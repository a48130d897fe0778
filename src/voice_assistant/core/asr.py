"""
Speech recognizers for finished utterances.
The core never calls these; the turn loop does.
"""

import io
import logging

import nemo.collections.asr as nemo_asr
import numpy as np
import torch
from openai import OpenAI

from ..utils import write_wav
from .session import Utterance

logger = logging.getLogger(__name__)


def utterance_to_float(utterance: Utterance) -> np.ndarray:
    """Mono float32 samples normalized to [-1, 1]."""
    audio_np = utterance.samples.astype(np.float32)
    if utterance.channels > 1:
        audio_np = audio_np.reshape(-1, utterance.channels).mean(axis=1)
    audio_np /= 32768.0
    return audio_np


class ASREngine:
    """ASR engine using NeMo Parakeet TDT model."""

    def __init__(self, model_name: str = "nvidia/parakeet-tdt-0.6b-v2"):
        logger.info("Loading ASR model: %s...", model_name)
        self.model = nemo_asr.models.ASRModel.from_pretrained(model_name=model_name)

        # Optimize for inference
        self.model.eval()

        # Use GPU with half-precision if available
        if torch.cuda.is_available():
            self.model = self.model.cuda()
            self.model = self.model.half()
            logger.info("ASR model loaded on GPU with FP16.")
        else:
            logger.info("ASR model loaded on CPU.")

    def transcribe(self, utterance: Utterance) -> str:
        """
        Transcribe an utterance to text.

        Args:
            utterance: Captured speech (int16 frames)

        Returns:
            Transcribed text string
        """
        return self.transcribe_numpy(utterance_to_float(utterance))

    def transcribe_numpy(self, audio_np: np.ndarray) -> str:
        """Transcribe mono float32 audio normalized to [-1, 1]."""
        with torch.inference_mode():
            output = self.model.transcribe([audio_np])

        if hasattr(output[0], "text"):
            return output[0].text
        if isinstance(output[0], list):
            return " ".join(output[0])
        return str(output[0])


class WhisperRecognizer:
    """Hosted transcription through the OpenAI audio API."""

    def __init__(
        self,
        client: OpenAI,
        model: str = "whisper-1",
        language: str = "en",
    ):
        self.client = client
        self.model = model
        self.language = language

    def transcribe(self, utterance: Utterance) -> str:
        wav = io.BytesIO()
        write_wav(wav, utterance.samples, utterance.sample_rate, utterance.channels)
        wav.seek(0)
        resp = self.client.audio.transcriptions.create(
            model=self.model,
            file=("utterance.wav", wav, "audio/wav"),
            language=self.language,
        )
        return resp.text
