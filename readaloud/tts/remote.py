"""Client for a remote Style-Bert-VITS2 synthesis server."""

import logging
from typing import Optional

import httpx

from readaloud.core.errors import BackendUnreachable, CatalogParseError, SynthesisFailure
from readaloud.tts.base import BaseTTSBackend
from readaloud.tts.catalog import ModelCatalog, parse_remote_catalog
from readaloud.tts.models import AudioClip, BackendKind, InferLang, ValidProfile

logger = logging.getLogger(__name__)

# Fixed synthesis hyperparameters sent with every request
SYNTHESIS_PARAMS = {
    "encoding": "utf-8",
    "sdp_ratio": 0.2,
    "noise": 0.6,
    "noisew": 0.8,
    "auto_split": "true",
    "split_interval": 0.5,
    "assist_text_weight": 1,
    "style_weight": 5,
}


class RemoteTTSBackend(BaseTTSBackend):
    """Synthesizes speech over HTTP.

    The catalog comes from the server's refresh endpoint and is swapped
    wholesale on every successful refresh.
    """

    kind = BackendKind.REMOTE

    def __init__(
        self,
        base_url: str,
        language: InferLang = InferLang.JP,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the remote backend.

        Args:
            base_url: Server root, e.g. ``http://127.0.0.1:5000``.
            language: Language sent with synthesis requests.
            timeout: Request timeout in seconds.
            client: Optional preconfigured client (tests inject one).
        """
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.language = language
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    async def connect(
        cls,
        base_url: str,
        language: InferLang = InferLang.JP,
        timeout: float = 30.0,
    ) -> "RemoteTTSBackend":
        """Create a backend and load its initial catalog."""
        backend = cls(base_url, language=language, timeout=timeout)
        try:
            await backend.refresh_catalog()
        except Exception:
            await backend.aclose()
            raise
        return backend

    async def refresh_catalog(self) -> ModelCatalog:
        """Fetch the model list and replace the catalog.

        On failure the previous catalog stays in effect.

        Raises:
            BackendUnreachable: Transport error.
            CatalogParseError: Response is not a well-formed catalog.
        """
        url = f"{self.base_url}/models/refresh"
        try:
            response = await self._client.post(url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise BackendUnreachable(
                f"catalog refresh returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise BackendUnreachable(f"cannot reach synthesis server: {e}") from e
        except ValueError as e:
            raise CatalogParseError(f"catalog is not valid JSON: {e}") from e

        catalog = parse_remote_catalog(payload)
        self._catalog = catalog
        logger.info(f"Model catalog refreshed: {len(catalog)} models")
        return catalog

    async def reload(self) -> None:
        await self.refresh_catalog()

    def build_params(self, text: str, profile: ValidProfile) -> dict:
        """Query parameters for one synthesis request."""
        return {
            "text": text,
            "model_id": profile.model_id,
            "speaker_id": profile.speaker_id,
            "length": profile.rate,
            "language": self.language.value,
            "style": profile.style_name,
            **SYNTHESIS_PARAMS,
        }

    async def synthesize(self, text: str, profile: ValidProfile) -> AudioClip:
        url = f"{self.base_url}/voice"
        try:
            response = await self._client.get(url, params=self.build_params(text, profile))
        except httpx.RequestError as e:
            raise BackendUnreachable(f"cannot reach synthesis server: {e}") from e

        if response.is_error:
            raise SynthesisFailure(
                f"synthesis server returned HTTP {response.status_code}: {response.reason_phrase}"
            )

        logger.debug(
            f"Synthesized {len(response.content)} bytes with model {profile.model_name}"
        )
        return AudioClip(data=response.content, backend_kind=self.kind)

    async def aclose(self) -> None:
        await self._client.aclose()
