"""
No-voice timeout handling.
"""

from enum import Enum


class TimeoutAction(str, Enum):
    NONE = "none"
    REPROMPT = "reprompt"
    ABORT = "abort"


class TimeoutMonitor:
    """
    Decides when to ask "are you there?" and when to give up.

    Only consulted while no speech has been confirmed. The countdown is
    independent of the signal level; it is rearmed only at session start
    and after the re-prompt.
    """

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s

    def check(
        self, now: float, session_start: float, prompt_played: bool
    ) -> TimeoutAction:
        """
        Args:
            now: Current monotonic time
            session_start: Monotonic time the countdown was (re)armed
            prompt_played: Whether the re-prompt already fired this session

        Returns:
            REPROMPT the first time the timeout elapses (the caller must rearm
            the countdown and mark the prompt played), ABORT when it elapses
            again afterwards, NONE otherwise.
        """
        if now - session_start <= self.timeout_s:
            return TimeoutAction.NONE
        if prompt_played:
            return TimeoutAction.ABORT
        return TimeoutAction.REPROMPT
