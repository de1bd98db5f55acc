"""Microphone level check used to pick a silence threshold."""

import logging
from typing import Optional

import numpy as np

from ..models.audio import MicLevel
from .capture import DEFAULT_DEVICE, compute_rms
from .recorder import SilenceGatedRecorder

logger = logging.getLogger(__name__)


def measure_mic_level(duration: float = 3.0, device_id: int = DEFAULT_DEVICE,
                      recorder: Optional[SilenceGatedRecorder] = None) -> MicLevel:
    """Record for ``duration`` seconds and report peak and RMS amplitude."""
    recorder = recorder or SilenceGatedRecorder()
    outcome = recorder.record_for(duration, device_id=device_id)
    if not outcome.has_audio:
        logger.warning("Mic level check captured no audio")
        return MicLevel(peak=0.0, rms=0.0, captured=False)

    samples = outcome.samples
    level = MicLevel(peak=float(np.max(np.abs(samples))), rms=compute_rms(samples))
    logger.info(f"Mic level: {level.describe()}")
    return level
