"""
Style-Bert-VITS2 inference engine.

Runs the style-bert-vits2 library in-process. Model archives (``*.sbv2``)
are zip files holding a ``*.safetensors`` weight file, ``config.json`` and
``style_vectors.npy``; each is extracted to a scratch directory while it
is resident.

Requires the optional ``local`` extra: pip install readaloud[local]
"""

import gc
import io
import logging
import shutil
import struct
import tempfile
import zipfile
from pathlib import Path
from typing import Any

from readaloud.tts.model_cache import InferenceEngine
from readaloud.tts.models import SAMPLE_FORMATS, BackendKind, InferLang

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
STYLE_VECTORS_FILE = "style_vectors.npy"
WEIGHTS_SUFFIX = ".safetensors"

# IEEE float format tag for the WAV fmt chunk
WAVE_FORMAT_IEEE_FLOAT = 3


def _float_audio_to_wav(samples: Any, sample_rate: int) -> bytes:
    """Write mono float32 samples as a WAV file.

    Args:
        samples: numpy float32 array with values in [-1.0, 1.0].
        sample_rate: Sample rate in Hz.

    Returns:
        WAV file bytes.
    """
    bits = SAMPLE_FORMATS[BackendKind.LOCAL].bits_per_sample
    block_align = bits // 8
    payload = samples.astype("<f4").tobytes()
    data_size = len(payload)

    buf = io.BytesIO()
    buf.write(b"RIFF")
    buf.write(struct.pack("<I", 36 + data_size))
    buf.write(b"WAVE")

    buf.write(b"fmt ")
    buf.write(struct.pack("<I", 16))
    buf.write(struct.pack("<H", WAVE_FORMAT_IEEE_FLOAT))
    buf.write(struct.pack("<H", 1))  # mono
    buf.write(struct.pack("<I", sample_rate))
    buf.write(struct.pack("<I", sample_rate * block_align))
    buf.write(struct.pack("<H", block_align))
    buf.write(struct.pack("<H", bits))

    buf.write(b"data")
    buf.write(struct.pack("<I", data_size))
    buf.write(payload)
    return buf.getvalue()


def extract_archive(archive: Path, target: Path) -> tuple[Path, Path, Path]:
    """Unpack a model archive and locate its three members.

    Returns:
        Paths of the weights, config and style vectors.

    Raises:
        FileNotFoundError: The archive is missing or incomplete.
    """
    if not archive.is_file():
        raise FileNotFoundError(str(archive))

    with zipfile.ZipFile(archive) as zf:
        zf.extractall(target)

    weights = next(iter(sorted(target.rglob(f"*{WEIGHTS_SUFFIX}"))), None)
    configs = list(target.rglob(CONFIG_FILE))
    vectors = list(target.rglob(STYLE_VECTORS_FILE))
    if weights is None or not configs or not vectors:
        raise FileNotFoundError(f"incomplete model archive: {archive}")
    return weights, configs[0], vectors[0]


class StyleBertVits2Engine(InferenceEngine):
    """In-process Style-Bert-VITS2 synthesis.

    Text-embedding model and tokenizer are loaded once at construction and
    shared by every voice model.
    """

    def __init__(
        self,
        bert_path: Path,
        tokenizer_path: Path,
        language: InferLang = InferLang.JP,
        device: str = "cpu",
    ):
        from style_bert_vits2.constants import Languages
        from style_bert_vits2.nlp import bert_models

        self.language = Languages(language.value)
        self.device = device
        self._models: dict[str, Any] = {}
        self._scratch: dict[str, Path] = {}

        logger.info(f"Loading text embedding assets for {self.language.value}")
        bert_models.load_model(self.language, str(bert_path))
        bert_models.load_tokenizer(self.language, str(tokenizer_path))

    def load(self, model_name: str, path: Path) -> None:
        from style_bert_vits2.tts_model import TTSModel

        scratch = Path(tempfile.mkdtemp(prefix=f"readaloud-{model_name}-"))
        try:
            weights, config, vectors = extract_archive(path, scratch)
            model = TTSModel(
                model_path=weights,
                config_path=config,
                style_vec_path=vectors,
                device=self.device,
            )
            model.load()
        except Exception:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        self._models[model_name] = model
        self._scratch[model_name] = scratch
        logger.info(f"Loaded model {model_name} on {self.device}")

    def unload(self, model_name: str) -> None:
        # TTSModel has no release call; dropping the last reference frees it
        model = self._models.pop(model_name, None)
        scratch = self._scratch.pop(model_name, None)
        try:
            if model is not None:
                del model
                gc.collect()
                if self.device.startswith("cuda"):
                    import torch

                    torch.cuda.empty_cache()
        finally:
            if scratch is not None:
                shutil.rmtree(scratch, ignore_errors=True)
        logger.info(f"Unloaded model {model_name}")

    def synthesize(self, model_name: str, text: str, length_scale: float) -> bytes:
        import numpy as np
        from style_bert_vits2.constants import DEFAULT_STYLE

        model = self._models[model_name]
        sample_rate, audio = model.infer(
            text=text,
            language=self.language,
            speaker_id=0,
            style=DEFAULT_STYLE,
            length=length_scale,
        )

        audio = np.asarray(audio)
        if np.issubdtype(audio.dtype, np.integer):
            audio = audio.astype(np.float32) / 32768.0
        audio = np.clip(audio.astype(np.float32), -1.0, 1.0)
        return _float_audio_to_wav(audio, sample_rate)
