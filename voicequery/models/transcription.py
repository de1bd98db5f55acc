"""Transcription-related data models."""

from dataclasses import dataclass, field
from typing import List, Optional


UNKNOWN_LANGUAGE = "unknown"


@dataclass
class TranscriptionSegment:
    """One timed piece of recognized text."""
    segment_id: int
    start_time: float  # seconds
    end_time: float    # seconds
    text: str
    confidence: float  # 0.0-1.0
    language: str = UNKNOWN_LANGUAGE

    def as_row(self) -> dict:
        return {
            "segment_id": self.segment_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "text": self.text,
            "confidence": self.confidence,
            "language": self.language,
        }


@dataclass
class TranscriptionResult:
    """Result of a transcription operation."""
    full_text: str
    segments: List[TranscriptionSegment] = field(default_factory=list)
    detected_language: str = UNKNOWN_LANGUAGE
    success: bool = True
    error: Optional[str] = None
    source: Optional[str] = None  # file path when transcribed from disk

    @classmethod
    def from_error(cls, error: Exception, source: Optional[str] = None) -> "TranscriptionResult":
        """Build a failed result so batch callers can report per-item errors."""
        return cls(full_text="", success=False, error=str(error), source=source)
