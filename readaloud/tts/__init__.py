"""Text-to-speech backends and the model catalog."""

from readaloud.tts.base import BaseTTSBackend
from readaloud.tts.catalog import ModelCatalog
from readaloud.tts.models import AudioClip, BackendKind, InferLang, SpeakingProfile, ValidProfile

__all__ = [
    "AudioClip",
    "BackendKind",
    "BaseTTSBackend",
    "InferLang",
    "ModelCatalog",
    "SpeakingProfile",
    "ValidProfile",
]
