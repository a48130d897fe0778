"""Error taxonomy for the voice assistant."""


class VoiceAssistantError(Exception):
    """Base class for recoverable assistant errors."""


class ConfigError(VoiceAssistantError, ValueError):
    """Invalid or missing configuration."""


class CaptureDeviceError(VoiceAssistantError):
    """The capture device could not be opened or started."""


class SessionClosedError(VoiceAssistantError, RuntimeError):
    """A capture session was used after reaching a terminal state."""


class MalformedFrameError(AssertionError):
    """
    A frame did not have the configured sample count.

    Raised as an assertion: it means the capture pipeline is misconfigured,
    not that something transient went wrong.
    """
