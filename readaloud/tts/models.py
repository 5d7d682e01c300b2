"""Data models shared by the text-to-speech backends."""

from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class BackendKind(str, Enum):
    """Which backend produced a clip."""

    REMOTE = "remote"
    LOCAL = "local"


class InferLang(str, Enum):
    """Languages the synthesis server understands."""

    JP = "JP"
    EN = "EN"
    ZH = "ZH"

    @classmethod
    def normalize(cls, value: str) -> "InferLang":
        """Map loose language codes ("ja", "Jp", "en", ...) to a member.

        Unknown codes fall back to Japanese.
        """
        aliases = {"JP": cls.JP, "JA": cls.JP, "EN": cls.EN, "ZH": cls.ZH}
        return aliases.get(value.strip().upper(), cls.JP)


class SampleFormat(NamedTuple):
    sample_rate: int
    bits_per_sample: int


# Assumed output format per backend; used for pacing only, never for decoding.
SAMPLE_FORMATS: dict[BackendKind, SampleFormat] = {
    BackendKind.REMOTE: SampleFormat(44100, 16),
    BackendKind.LOCAL: SampleFormat(44100, 32),
}


def estimate_duration(length: int, kind: BackendKind) -> float:
    """Estimate playback seconds of ``length`` audio bytes from ``kind``."""
    fmt = SAMPLE_FORMATS[kind]
    return (length * 8) / (fmt.sample_rate * fmt.bits_per_sample)


class SpeakingProfile(BaseModel):
    """A user's requested voice. Names may be stale or unknown."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str = ""
    speaker_name: str = ""
    style_name: str = ""
    rate: float = Field(default=1.0, ge=0.1, le=5.0)


class ValidProfile(BaseModel):
    """A speaking profile resolved against the current model catalog."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: int
    model_name: str
    speaker_id: int
    speaker_name: str
    style_id: int
    style_name: str
    rate: float = 1.0


class SynthesisRequest(BaseModel):
    """Transient request handed to a backend."""

    text: str
    profile: ValidProfile


class AudioClip(BaseModel):
    """Synthesized audio ready for playback."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    data: bytes
    backend_kind: BackendKind

    @property
    def duration_seconds(self) -> float:
        return estimate_duration(len(self.data), self.backend_kind)


class CatalogEntry(BaseModel):
    """One model known to a backend, with both-direction name maps."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: int
    model_name: str
    speaker_name_to_id: dict[str, int] = Field(default_factory=dict)
    id_to_speaker_name: dict[int, str] = Field(default_factory=dict)
    style_name_to_id: dict[str, int] = Field(default_factory=dict)
    id_to_style_name: dict[int, str] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        model_id: int,
        model_name: str,
        speakers: dict[str, int],
        styles: dict[str, int],
    ) -> "CatalogEntry":
        """Create an entry, deriving the reverse maps."""
        return cls(
            model_id=model_id,
            model_name=model_name,
            speaker_name_to_id=dict(speakers),
            id_to_speaker_name={v: k for k, v in speakers.items()},
            style_name_to_id=dict(styles),
            id_to_style_name={v: k for k, v in styles.items()},
        )
