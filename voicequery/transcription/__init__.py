"""Speech recognition: model contexts, caching and orchestration."""

from .base import EngineOutput, EngineSegment, EngineToken, ModelContext
from .context_cache import ModelContextCache
from .faster_whisper_backend import FasterWhisperContext, load_faster_whisper_context
from .orchestrator import TranscriptionOrchestrator, resolve_thread_count, segment_confidence

__all__ = [
    "EngineOutput",
    "EngineSegment",
    "EngineToken",
    "ModelContext",
    "ModelContextCache",
    "FasterWhisperContext",
    "load_faster_whisper_context",
    "TranscriptionOrchestrator",
    "resolve_thread_count",
    "segment_confidence",
]
