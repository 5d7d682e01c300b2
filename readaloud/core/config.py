"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from readaloud.tts.models import BackendKind, InferLang


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    base_dir: Path = Path(__file__).parent.parent.parent
    data_dir: Path = base_dir / "data"

    # Discord
    discord_token: str = ""
    command_prefix: str = "!"

    # Backend selection (fixed for the lifetime of the process)
    tts_backend: BackendKind = BackendKind.REMOTE
    infer_lang: InferLang = InferLang.JP
    default_model: str = ""

    # Reading behaviour
    read_limit: int = Field(default=100, ge=1)
    fast_read_rate: float = 0.5
    fast_read_thresholds: dict[InferLang, int] = Field(
        default_factory=lambda: {
            InferLang.JP: 30,
            InferLang.EN: 80,
            InferLang.ZH: 30,
        }
    )

    # Remote backend
    remote_host: str = "127.0.0.1"
    remote_port: int = 5000
    remote_timeout: float = 30.0

    # Local backend
    local_model_dir: Path = data_dir / "models"
    local_bert_path: Path = data_dir / "downloads" / "deberta"
    local_tokenizer_path: Path = data_dir / "downloads" / "tokenizer"
    max_loaded_models: Optional[int] = None  # None or 0 = unbounded
    local_device: str = "cpu"

    # Output gain per backend
    remote_gain: float = 0.1
    local_gain: float = 0.3

    log_level: str = "INFO"

    @property
    def remote_base_url(self) -> str:
        """Base URL of the remote synthesis server."""
        return f"http://{self.remote_host}:{self.remote_port}"

    def gain_for(self, kind: BackendKind) -> float:
        """Output gain to apply to clips produced by ``kind``."""
        if kind == BackendKind.LOCAL:
            return self.local_gain
        return self.remote_gain

    def fast_read_threshold(self) -> int:
        """Character count at which long messages are read fast."""
        return self.fast_read_thresholds.get(self.infer_lang, 30)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
