"""In-process synthesis backend with a bounded set of resident models."""

import logging
from pathlib import Path
from typing import Optional

from readaloud.core.errors import ModelNotFound
from readaloud.tts.base import BaseTTSBackend
from readaloud.tts.catalog import ModelCatalog
from readaloud.tts.model_cache import InferenceEngine, ModelResidencyCache
from readaloud.tts.models import AudioClip, BackendKind, CatalogEntry, ValidProfile
from readaloud.tts.worker import InferenceWorker

logger = logging.getLogger(__name__)

MODEL_SUFFIX = ".sbv2"
DEFAULT_VOICE = "default"


def scan_model_folder(folder: Path) -> dict[str, Path]:
    """Find model archives in ``folder``, keyed by file stem.

    Raises:
        ModelNotFound: The folder is missing or holds no archives.
    """
    if not folder.is_dir():
        raise ModelNotFound(f"model folder does not exist: {folder}")

    models = {
        path.stem: path
        for path in sorted(folder.iterdir())
        if path.is_file() and path.suffix == MODEL_SUFFIX
    }
    if not models:
        raise ModelNotFound(f"no {MODEL_SUFFIX} models in {folder}")

    for name in models:
        logger.debug(f"Found model: {name}")
    return models


def build_local_catalog(models: dict[str, Path]) -> ModelCatalog:
    """Catalog with one default speaker and style per archive."""
    return ModelCatalog(
        [
            CatalogEntry.build(
                model_id=idx,
                model_name=name,
                speakers={DEFAULT_VOICE: 0},
                styles={DEFAULT_VOICE: 0},
            )
            for idx, name in enumerate(sorted(models))
        ]
    )


class LocalTTSBackend(BaseTTSBackend):
    """Runs inference in this process on a dedicated worker thread.

    Every synthesis is a single worker job covering model selection,
    eviction, loading and inference, so only one runs at a time.
    """

    kind = BackendKind.LOCAL

    def __init__(
        self,
        engine: InferenceEngine,
        model_folder: Path,
        max_loaded_models: Optional[int] = None,
        worker: Optional[InferenceWorker] = None,
    ):
        """Initialize the local backend.

        Args:
            engine: Inference engine with shared assets already loaded.
            model_folder: Directory of ``*.sbv2`` archives.
            max_loaded_models: Residency bound; None or 0 means unbounded.
            worker: Optional worker (tests share one).
        """
        self.model_folder = Path(model_folder)
        models = scan_model_folder(self.model_folder)
        super().__init__(build_local_catalog(models))
        self.cache = ModelResidencyCache(engine, models, capacity=max_loaded_models)
        self.worker = worker or InferenceWorker()

    async def synthesize(self, text: str, profile: ValidProfile) -> AudioClip:
        data = await self.worker.run(
            self.cache.synthesize_exclusive,
            profile.model_name,
            text,
            profile.rate,
        )
        logger.debug(f"Synthesized {len(data)} bytes with model {profile.model_name}")
        return AudioClip(data=data, backend_kind=self.kind)

    async def reload(self) -> None:
        """Rescan the model folder and drop every resident model."""
        models = scan_model_folder(self.model_folder)

        def swap():
            try:
                self.cache.unload_all()
            finally:
                self.cache.set_models(models)

        try:
            await self.worker.run(swap)
        finally:
            self._catalog = build_local_catalog(models)
        logger.info(f"Local models reloaded: {len(models)} models")

    async def aclose(self) -> None:
        try:
            await self.worker.run(self.cache.unload_all)
        finally:
            self.worker.shutdown()
