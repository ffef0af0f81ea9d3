"""Speech service exceptions."""


class SpeechSynthesisError(Exception):
    """Raised when text could not be turned into carrier audio."""
