"""Error taxonomy shared by every voiceclip component."""


class VoiceClipError(RuntimeError):
    """Base class for errors raised by voiceclip."""


class CaptureError(VoiceClipError):
    """Raised when the microphone cannot be opened or a recording cannot be finalized."""


class TranscriptionError(VoiceClipError):
    """Raised when the speech-to-text provider is unavailable or the call fails."""


class PersistenceError(VoiceClipError):
    """Raised when the history store cannot be read from or written to."""


class NotConnectedError(PersistenceError):
    """Raised when a history store is used before ``connect()``."""


class ValidationError(VoiceClipError, ValueError):
    """Raised for malformed dates or missing required fields."""


class ClipboardError(VoiceClipError):
    """Raised when the clipboard rejects a write."""


class HotkeyError(VoiceClipError):
    """Raised when the hotkey bridge is misused."""
