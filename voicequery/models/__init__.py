"""Data models for the voicequery package."""

from .audio import AudioDevice, MicLevel, RecordingOutcome, StopReason
from .catalog import ModelInfo
from .events import StatusEvent
from .pipeline import PipelineJob, VoiceQueryResult
from .transcription import TranscriptionResult, TranscriptionSegment, UNKNOWN_LANGUAGE

__all__ = [
    "AudioDevice",
    "MicLevel",
    "RecordingOutcome",
    "StopReason",
    "ModelInfo",
    "StatusEvent",
    "PipelineJob",
    "VoiceQueryResult",
    "TranscriptionResult",
    "TranscriptionSegment",
    "UNKNOWN_LANGUAGE",
]
