"""Discord voice-channel text-to-speech reader."""

__version__ = "0.1.0"
