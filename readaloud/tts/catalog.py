"""Model catalog snapshots and speaking-profile resolution."""

import logging
import re
from typing import Any, Optional

from readaloud.core.errors import CatalogParseError, ModelNotFound
from readaloud.tts.models import CatalogEntry, ValidProfile

logger = logging.getLogger(__name__)

_PATH_SEPARATORS = re.compile(r"[\\/]+")


class ModelCatalog:
    """Immutable snapshot of the models a backend can synthesize with.

    A catalog is never patched in place. Backends build a fresh one and
    swap the reference, so readers always see a consistent view.
    """

    def __init__(self, entries: Optional[list[CatalogEntry]] = None):
        entries = entries or []
        self._by_id: dict[int, CatalogEntry] = {e.model_id: e for e in entries}
        self._by_name: dict[str, CatalogEntry] = {e.model_name: e for e in entries}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, model_name: str) -> bool:
        return model_name in self._by_name

    @property
    def entries(self) -> list[CatalogEntry]:
        """Entries ordered by model id."""
        return [self._by_id[i] for i in sorted(self._by_id)]

    @property
    def names(self) -> list[str]:
        return [e.model_name for e in self.entries]

    def get(self, model_name: str) -> Optional[CatalogEntry]:
        return self._by_name.get(model_name)

    def baseline(self) -> CatalogEntry:
        """The lowest-id model, used when nothing else matches."""
        if not self._by_id:
            raise ModelNotFound("model catalog is empty")
        return self._by_id[min(self._by_id)]

    def resolve(
        self,
        model_name: str,
        speaker_name: str,
        style_name: str,
        default_model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        rate: float = 1.0,
    ) -> ValidProfile:
        """Resolve a requested profile, falling back field by field.

        Unknown model -> ``default_model`` -> ``fallback_model`` -> baseline
        model. Within the resolved model, an unknown speaker or style falls
        back to id 0. Never raises for unknown names; only an empty catalog raises.
        """
        entry = self.get(model_name)
        for candidate in (default_model, fallback_model):
            if entry is None and candidate:
                entry = self.get(candidate)
        if entry is None:
            entry = self.baseline()
        if entry.model_name != model_name:
            logger.debug(f"Model {model_name!r} not in catalog, using {entry.model_name!r}")

        speaker_id = _pick_id(entry.speaker_name_to_id, entry.id_to_speaker_name, speaker_name)
        style_id = _pick_id(entry.style_name_to_id, entry.id_to_style_name, style_name)

        return ValidProfile(
            model_id=entry.model_id,
            model_name=entry.model_name,
            speaker_id=speaker_id,
            speaker_name=entry.id_to_speaker_name.get(speaker_id, ""),
            style_id=style_id,
            style_name=entry.id_to_style_name.get(style_id, ""),
            rate=rate,
        )


def _pick_id(name_to_id: dict[str, int], id_to_name: dict[int, str], name: str) -> int:
    if name in name_to_id:
        return name_to_id[name]
    if 0 in id_to_name or not id_to_name:
        return 0
    return min(id_to_name)


def display_name_from_path(path: str) -> str:
    """Folder name holding a model's config file.

    ``model_assets\\\\amitaro\\\\config.json`` and
    ``model_assets/amitaro/config.json`` both yield ``amitaro``.
    """
    parts = [p for p in _PATH_SEPARATORS.split(path.strip()) if p]
    if len(parts) < 2:
        raise CatalogParseError(f"config_path has no parent folder: {path!r}")
    return parts[-2]


def _parse_id_map(model_id: str, info: dict, field: str) -> dict[str, int]:
    raw = info.get(field)
    if not isinstance(raw, dict):
        raise CatalogParseError(f"model {model_id}: {field} is missing")

    result = {}
    for name, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CatalogParseError(f"model {model_id}: invalid {field} id for {name!r}")
        result[str(name)] = value
    return result


def parse_remote_catalog(payload: Any) -> ModelCatalog:
    """Build a catalog from the synthesis server's refresh response.

    Args:
        payload: Decoded JSON object keyed by model id.

    Returns:
        A new ModelCatalog.

    Raises:
        CatalogParseError: If any model lacks an expected field.
    """
    if not isinstance(payload, dict):
        raise CatalogParseError("model info is not a JSON object")

    entries = []
    for raw_id, info in payload.items():
        try:
            model_id = int(raw_id)
        except (TypeError, ValueError):
            raise CatalogParseError(f"model id cannot be parsed: {raw_id!r}") from None

        if not isinstance(info, dict):
            raise CatalogParseError(f"model {raw_id}: info is not an object")

        config_path = info.get("config_path")
        if not isinstance(config_path, str):
            raise CatalogParseError(f"model {raw_id}: config_path is missing")

        entries.append(
            CatalogEntry.build(
                model_id=model_id,
                model_name=display_name_from_path(config_path),
                speakers=_parse_id_map(raw_id, info, "spk2id"),
                styles=_parse_id_map(raw_id, info, "style2id"),
            )
        )

    logger.debug(f"Parsed {len(entries)} models from catalog")
    return ModelCatalog(entries)
