"""Exception hierarchy for the reader.

Backend errors (``TTSError``) surface on the producer path and trigger a
failure-induced leave. Presence errors (``PresenceError``) are the result of
an explicit command and carry the key of the user-facing message to reply
with.
"""

from typing import Optional


class ReadAloudError(Exception):
    """Base class for all reader errors."""


class TTSError(ReadAloudError):
    """A text-to-speech backend could not produce audio."""


class BackendUnreachable(TTSError):
    """The remote synthesis server could not be reached."""


class ModelNotFound(TTSError):
    """No model matching the request exists (or none exist at all)."""


class CatalogParseError(TTSError):
    """The remote model catalog was missing expected fields."""


class SynthesisFailure(TTSError):
    """The backend was reachable but inference failed."""


class PresenceError(ReadAloudError):
    """A voice presence command could not be carried out."""

    message_key = "command_failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message_key)
        self.detail = detail


class VoiceConnectFailure(PresenceError):
    """The low-level voice connect call failed."""

    message_key = "join_cannot_connect"


class SessionAbsent(PresenceError):
    """The targeted guild has no active session."""

    message_key = "not_connected"


class AlreadyConnected(PresenceError):
    """The bot is already connected in the guild."""

    message_key = "join_already"


class InvokerNotInVoice(PresenceError):
    """The invoking user is not in any voice channel of the guild."""

    message_key = "user_not_in_voice"
