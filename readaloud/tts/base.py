"""Backend abstraction for text-to-speech synthesis.

Two interchangeable implementations exist: a client for a remote synthesis
server and an in-process inference engine. One is chosen at startup and
kept for the lifetime of the process.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from readaloud.tts.catalog import ModelCatalog
from readaloud.tts.models import AudioClip, BackendKind, ValidProfile

logger = logging.getLogger(__name__)


class BaseTTSBackend(ABC):
    """Abstract base class for TTS backends."""

    kind: BackendKind

    def __init__(self, catalog: Optional[ModelCatalog] = None):
        self._catalog = catalog or ModelCatalog()

    @property
    def catalog(self) -> ModelCatalog:
        """Current model catalog snapshot."""
        return self._catalog

    def resolve_profile(
        self,
        model_name: str,
        speaker_name: str,
        style_name: str,
        default_model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        rate: float = 1.0,
    ) -> ValidProfile:
        """Resolve a requested voice against the current catalog.

        Args:
            model_name: Requested model name.
            speaker_name: Requested speaker within the model.
            style_name: Requested style within the model.
            default_model: Guild default model name.
            fallback_model: Global default model name, tried after the guild's.
            rate: Speaking length scale.

        Returns:
            A profile whose every field exists in the catalog.
        """
        return self._catalog.resolve(
            model_name,
            speaker_name,
            style_name,
            default_model=default_model,
            fallback_model=fallback_model,
            rate=rate,
        )

    @abstractmethod
    async def synthesize(self, text: str, profile: ValidProfile) -> AudioClip:
        """Synthesize speech from text.

        Args:
            text: Text to convert to speech.
            profile: Resolved voice configuration.

        Returns:
            AudioClip tagged with this backend's kind.

        Raises:
            TTSError: The backend could not produce audio. Not retried.
        """

    @abstractmethod
    async def reload(self) -> None:
        """Rebuild the model catalog from the backend's source of truth."""

    async def aclose(self) -> None:
        """Release network clients, worker threads and loaded models."""
