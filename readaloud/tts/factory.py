"""Startup-time backend selection."""

import logging
from typing import TYPE_CHECKING

from readaloud.tts.base import BaseTTSBackend
from readaloud.tts.models import BackendKind

if TYPE_CHECKING:
    from readaloud.core.config import Settings

logger = logging.getLogger(__name__)


async def create_backend(settings: "Settings") -> BaseTTSBackend:
    """Build the configured backend and load its initial catalog.

    The choice is made once; there is no switching at runtime.

    Raises:
        TTSError: The backend could not be initialized.
    """
    if settings.tts_backend == BackendKind.LOCAL:
        from readaloud.tts.local import LocalTTSBackend
        from readaloud.tts.sbv2_engine import StyleBertVits2Engine

        engine = StyleBertVits2Engine(
            bert_path=settings.local_bert_path,
            tokenizer_path=settings.local_tokenizer_path,
            language=settings.infer_lang,
            device=settings.local_device,
        )
        backend = LocalTTSBackend(
            engine,
            settings.local_model_dir,
            max_loaded_models=settings.max_loaded_models,
        )
    else:
        from readaloud.tts.remote import RemoteTTSBackend

        backend = await RemoteTTSBackend.connect(
            settings.remote_base_url,
            language=settings.infer_lang,
            timeout=settings.remote_timeout,
        )

    logger.info(
        f"Using {backend.kind.value} TTS backend with {len(backend.catalog)} models"
    )
    return backend
