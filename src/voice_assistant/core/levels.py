"""
Frame energy and adaptive noise estimation.
"""

from dataclasses import dataclass

import numpy as np

from ..utils import frame_level
from .config import VADConfig


@dataclass
class NoiseModel:
    """Smoothed level estimates for one capture session."""

    long_term_level: float = 0.0
    current_level: float = 0.0
    # Frozen at speech onset so the speaker's own voice
    # does not raise the floor used to detect the end.
    ambient_level: float = 0.0


class LevelEstimator:
    """
    Tracks two exponential moving averages of frame energy.

    The slow average follows room noise drift, the fast one follows
    the speaker, so no manual calibration step is needed.
    """

    def __init__(self, config: VADConfig, model: NoiseModel | None = None):
        self.long_term_alpha = config.long_term_alpha
        self.current_alpha = config.current_alpha
        self.model = model if model is not None else NoiseModel()

    def observe(self, frame: np.ndarray) -> tuple[float, float, float]:
        """
        Update the noise model from one frame.

        Returns:
            (instant_level, long_term_level, current_level)
        """
        return self.observe_level(frame_level(frame))

    def observe_level(self, level: float) -> tuple[float, float, float]:
        """Same as observe() for an already computed instant level."""
        m = self.model
        m.long_term_level = m.long_term_level * self.long_term_alpha + level * (
            1.0 - self.long_term_alpha
        )
        m.current_level = m.current_level * self.current_alpha + level * (
            1.0 - self.current_alpha
        )
        return level, m.long_term_level, m.current_level

    def freeze_ambient(self) -> float:
        """Snapshot the long-term level as the session's ambient level."""
        self.model.ambient_level = self.model.long_term_level
        return self.model.ambient_level
