"""Turns 16 kHz samples into structured transcription results."""

import io
import logging
import os
from importlib import import_module
from typing import Iterable, Optional, Union

import numpy as np

from ..config.settings import WhisperSettings
from ..errors import CaptureError, InferenceError, ModelError, VoiceQueryError
from ..models.transcription import UNKNOWN_LANGUAGE, TranscriptionResult, TranscriptionSegment
from ..status import StatusPublisher
from .base import EngineToken
from .context_cache import ModelContextCache
from .model_manager import resolve_model_path

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
MAX_AUTO_THREADS = 8

TRANSLATION_MODEL_ERROR = (
    "Translation requires a multilingual model. English-only models (.en) do not support "
    "translation. Please use a multilingual model like 'tiny', 'base', 'small', 'medium', "
    "or 'large-v3'."
)


def resolve_thread_count(requested: int) -> int:
    """Use the requested count, or min(8, CPU count) when it is 0."""
    if requested > 0:
        return requested
    return min(MAX_AUTO_THREADS, os.cpu_count() or 1)


def segment_confidence(tokens: Iterable[EngineToken]) -> float:
    """Mean probability over non-special tokens, 0.0 when none are scoreable."""
    probabilities = [token.probability for token in tokens if not token.special]
    if not probabilities:
        return 0.0
    return min(1.0, max(0.0, sum(probabilities) / len(probabilities)))


class TranscriptionOrchestrator:
    """Runs one engine pass per call against a cached model context."""

    def __init__(self, cache: ModelContextCache, status: Optional[StatusPublisher] = None):
        self.cache = cache
        self.status = status or StatusPublisher(enabled=False)

    def transcribe(self, samples: Optional[np.ndarray], settings: WhisperSettings) -> TranscriptionResult:
        if samples is None or len(samples) == 0:
            raise CaptureError("Empty audio data")

        model_path = resolve_model_path(settings.model, settings.model_path)
        threads = resolve_thread_count(settings.threads)
        context = self.cache.get_or_load(model_path, use_gpu=settings.use_gpu, threads=threads)
        if context.threads != threads:
            logger.debug(f"Requested {threads} threads but {model_path} was loaded with "
                         f"{context.threads}; the loaded count applies until it is evicted")

        if settings.translate and not context.is_multilingual:
            raise ModelError(TRANSLATION_MODEL_ERROR)

        language = None if settings.language == "auto" else settings.language
        self.status.publish("transcribing", f"Transcribing {len(samples) / SAMPLE_RATE:.1f}s "
                                            f"of audio with {settings.model}")
        samples = np.ascontiguousarray(samples, dtype=np.float32)

        with context.inference_lock:
            try:
                output = context.run(samples, language=language, translate=settings.translate)
            except VoiceQueryError:
                raise
            except Exception as e:
                logger.error(f"Inference failed: {e}")
                raise InferenceError(f"Transcription failed: {e}") from e

        if output.status != 0:
            raise InferenceError(f"Transcription failed with error code: {output.status}",
                                 code=output.status)

        segments = []
        for index, raw in enumerate(output.segments):
            segments.append(TranscriptionSegment(
                segment_id=index,
                start_time=raw.start,
                end_time=raw.end,
                text=raw.text,
                confidence=segment_confidence(raw.tokens),
                language=raw.language or output.language or UNKNOWN_LANGUAGE,
            ))

        full_text = " ".join(segment.text for segment in segments if segment.text)
        detected_language = segments[0].language if segments else UNKNOWN_LANGUAGE
        logger.info(f"Transcribed {len(segments)} segment(s), language={detected_language}")
        return TranscriptionResult(full_text=full_text, segments=segments,
                                   detected_language=detected_language)

    def transcribe_file(self, path: str, settings: WhisperSettings) -> TranscriptionResult:
        """Decode any format supported by PyAV to 16 kHz mono, then transcribe."""
        if not os.path.isfile(path):
            raise CaptureError(f"Failed to load audio: file not found: {path}")
        result = self.transcribe(self._decode(path), settings)
        result.source = path
        return result

    def transcribe_bytes(self, data: bytes, settings: WhisperSettings) -> TranscriptionResult:
        """Transcribe an encoded audio file held in memory."""
        if not data:
            raise CaptureError("Empty audio data")
        return self.transcribe(self._decode(io.BytesIO(data)), settings)

    def _decode(self, source: Union[str, io.BytesIO]) -> np.ndarray:
        try:
            faster_whisper = import_module("faster_whisper")
        except ModuleNotFoundError as e:
            raise ModelError("faster-whisper is not installed. Install with: pip install faster-whisper") from e
        try:
            return faster_whisper.decode_audio(source, sampling_rate=SAMPLE_RATE)
        except Exception as e:
            raise CaptureError(f"Failed to load audio: {e}") from e
