"""Audio-related data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class AudioDevice:
    """Capture device snapshot taken at enumeration time."""
    id: int
    name: str
    is_capture: bool = True


class StopReason(Enum):
    """Why a silence-gated recording ended."""
    SILENCE = "silence"
    TIMEOUT = "timeout"


@dataclass
class RecordingOutcome:
    """Samples handed over by the recorder, or None when nothing was captured."""
    samples: Optional[np.ndarray]
    stop_reason: Optional[StopReason]
    duration_seconds: float

    @property
    def has_audio(self) -> bool:
        return self.samples is not None and len(self.samples) > 0


@dataclass
class MicLevel:
    """Peak and RMS amplitude measured over a short recording."""
    peak: float
    rms: float
    captured: bool = True

    @property
    def suggested_threshold(self) -> float:
        return self.rms * 0.5

    def describe(self) -> str:
        if not self.captured:
            return "No audio captured"
        return (f"Peak: {self.peak:.6f}, RMS: {self.rms:.6f} "
                f"(suggested threshold: {self.suggested_threshold:.6f})")
