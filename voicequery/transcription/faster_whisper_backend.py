"""faster-whisper implementation of the model context."""

import logging
from importlib import import_module
from pathlib import Path
from typing import Optional

import numpy as np

from ..errors import ModelError
from .base import EngineOutput, EngineSegment, EngineToken, ModelContext

logger = logging.getLogger(__name__)


class FasterWhisperContext(ModelContext):
    """Wraps a loaded ``faster_whisper.WhisperModel``."""

    def __init__(self, model, model_path: str, use_gpu: bool = False, threads: int = 0):
        super().__init__(model_path, use_gpu, threads)
        self.model = model

    @property
    def is_multilingual(self) -> bool:
        return bool(self.model.model.is_multilingual)

    def run(self, samples: np.ndarray, language: Optional[str] = None,
            translate: bool = False) -> EngineOutput:
        raw_segments, info = self.model.transcribe(
            samples,
            language=language,
            task="translate" if translate else "transcribe",
            word_timestamps=True,
        )

        # Segments are generated lazily; decoding happens while iterating.
        segments = []
        for segment in raw_segments:
            words = getattr(segment, "words", None) or []
            segments.append(EngineSegment(
                start=float(segment.start),
                end=float(segment.end),
                text=str(segment.text).strip(),
                tokens=[EngineToken(probability=float(word.probability)) for word in words],
                language=info.language,
            ))

        return EngineOutput(status=0, segments=segments, language=info.language)


def load_faster_whisper_context(model_path: str, use_gpu: bool = False,
                                threads: int = 0) -> FasterWhisperContext:
    """Load a CTranslate2 model directory.

    ``threads`` is fixed for the lifetime of the loaded model.
    """
    if not Path(model_path).exists():
        raise ModelError(f"Model not found: {model_path}")

    try:
        faster_whisper = import_module("faster_whisper")
    except ModuleNotFoundError as e:
        raise ModelError("faster-whisper is not installed. Install with: pip install faster-whisper") from e

    device = "cuda" if use_gpu else "cpu"
    compute_type = "float16" if use_gpu else "int8"
    logger.info(f"Loading model {model_path} (device={device}, compute_type={compute_type}, "
                f"threads={threads})")
    try:
        model = faster_whisper.WhisperModel(
            str(model_path),
            device=device,
            compute_type=compute_type,
            cpu_threads=threads,
        )
    except Exception as e:
        raise ModelError(f"Failed to load model from {model_path}: {e}") from e

    logger.info(f"Model loaded: {model_path}")
    return FasterWhisperContext(model, str(model_path), use_gpu=use_gpu, threads=threads)
