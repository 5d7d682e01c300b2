"""Bounded residency cache for in-process inference models."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from readaloud.core.errors import ModelNotFound, SynthesisFailure

logger = logging.getLogger(__name__)


class InferenceEngine(ABC):
    """Opaque synthesis capability holding loaded models by name.

    Implementations are not reentrant; callers serialize every call.
    """

    @abstractmethod
    def load(self, model_name: str, path: Path) -> None:
        """Load a model archive under ``model_name``."""

    @abstractmethod
    def unload(self, model_name: str) -> None:
        """Release a loaded model."""

    @abstractmethod
    def synthesize(self, model_name: str, text: str, length_scale: float) -> bytes:
        """Run inference with a loaded model and return audio bytes."""


class ModelResidencyCache:
    """Keeps at most ``capacity`` models loaded, evicting the oldest first.

    Residency order is load order. All methods block and must only be
    called from the single inference worker, which makes the whole
    select/evict/load/synthesize sequence mutually exclusive.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        models: dict[str, Path],
        capacity: Optional[int] = None,
    ):
        """Initialize the cache.

        Args:
            engine: Inference engine that owns the loaded weights.
            models: Known model archives keyed by model name.
            capacity: Maximum resident models; None or 0 means unbounded.
        """
        self.engine = engine
        self._models = dict(models)
        self.capacity = capacity or None
        self._resident: list[str] = []

    @property
    def resident(self) -> list[str]:
        """Resident model names, oldest first."""
        return list(self._resident)

    def is_resident(self, model_name: str) -> bool:
        return model_name in self._resident

    def set_models(self, models: dict[str, Path]) -> None:
        """Replace the table of known model archives."""
        self._models = dict(models)

    def ensure_loaded(self, model_name: str) -> None:
        """Make ``model_name`` resident, evicting the oldest if full.

        Raises:
            ModelNotFound: The model is not a known archive.
            SynthesisFailure: The engine failed to load the archive or to
                release the evicted model.
        """
        if model_name in self._resident:
            return

        path = self._models.get(model_name)
        if path is None:
            raise ModelNotFound(f"unknown model: {model_name}")

        if self.capacity is not None and len(self._resident) >= self.capacity:
            self._unload(self._resident.pop(0))

        logger.debug(f"Model load: {model_name}")
        try:
            self.engine.load(model_name, path)
        except FileNotFoundError as e:
            raise ModelNotFound(f"model archive missing: {path}") from e
        except Exception as e:
            raise SynthesisFailure(f"failed to load {model_name}: {e}") from e

        self._resident.append(model_name)

    def synthesize_exclusive(self, model_name: str, text: str, length_scale: float) -> bytes:
        """Load (if needed) and run inference in one critical section."""
        self.ensure_loaded(model_name)
        try:
            return self.engine.synthesize(model_name, text, length_scale)
        except Exception as e:
            raise SynthesisFailure(f"inference failed with {model_name}: {e}") from e

    def unload_all(self) -> None:
        """Unload every resident model.

        Every model leaves the resident set even if releasing one fails.

        Raises:
            SynthesisFailure: The engine failed to release a model.
        """
        failure: Optional[SynthesisFailure] = None
        while self._resident:
            try:
                self._unload(self._resident.pop(0))
            except SynthesisFailure as e:
                failure = failure or e
        if failure is not None:
            raise failure

    def _unload(self, model_name: str) -> None:
        # Callers drop the name from the resident set first
        logger.debug(f"Model unload: {model_name}")
        try:
            self.engine.unload(model_name)
        except Exception as e:
            raise SynthesisFailure(f"failed to unload {model_name}: {e}") from e
