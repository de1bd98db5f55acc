"""Audio capture and silence-gated recording."""

from .capture import CaptureHandle, DeviceCapture, compute_rms
from .levels import measure_mic_level
from .recorder import RecorderState, RecordingSession, SilenceGatedRecorder
from ..models.audio import StopReason

__all__ = [
    "CaptureHandle",
    "DeviceCapture",
    "compute_rms",
    "measure_mic_level",
    "RecorderState",
    "RecordingSession",
    "SilenceGatedRecorder",
    "StopReason",
]
