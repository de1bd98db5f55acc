"""Silence-gated recording: capture until sound is followed by silence."""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..errors import DeviceError
from ..models.audio import RecordingOutcome, StopReason
from .capture import DEFAULT_DEVICE, SAMPLE_RATE, CaptureHandle, DeviceCapture

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


class RecorderState(Enum):
    IDLE = "idle"
    AWAITING_SOUND = "awaiting_sound"
    TIMING_SILENCE = "timing_silence"
    STOPPED = "stopped"


class RecordingSession:
    """Buffer and timers for one recording; discarded at stop."""

    def __init__(self, started_at: float, max_duration: float,
                 silence_duration: float, threshold: float):
        self.started_at = started_at
        self.max_duration = max_duration
        self.silence_duration = silence_duration
        self.threshold = threshold
        self.sound_detected = False
        self.silence_started_at: Optional[float] = None
        self.recording = True
        self.stop_reason: Optional[StopReason] = None
        self._chunks: List[np.ndarray] = []

    def append(self, samples: np.ndarray) -> None:
        """Capture callback target; chunks arriving after stop are dropped."""
        if self.recording:
            self._chunks.append(samples)

    def take_samples(self) -> Optional[np.ndarray]:
        if self.recording:
            raise RuntimeError("Buffer cannot be read while the session is recording")
        chunks, self._chunks = self._chunks, []
        if not chunks:
            return None
        samples = np.concatenate(chunks).astype(np.float32, copy=False)
        return samples if samples.size else None


class SilenceGatedRecorder:
    """Polls the capture amplitude and stops on silence or max duration.

    Polling runs on the caller's thread; samples arrive on the capture
    thread. ``clock`` and ``sleep`` can be replaced to drive the recorder
    from a simulated timeline.
    """

    def __init__(self, capture: Optional[DeviceCapture] = None,
                 poll_interval: float = POLL_INTERVAL,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.capture = capture or DeviceCapture()
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self.state = RecorderState.IDLE
        self.session: Optional[RecordingSession] = None
        self.handle: Optional[CaptureHandle] = None

    def start(self, device_id: int = DEFAULT_DEVICE, max_duration: float = 15.0,
              silence_duration: float = 1.0, threshold: float = 0.001) -> None:
        if self.state != RecorderState.IDLE:
            raise RuntimeError(f"Recorder is not idle (state: {self.state.value})")

        session = RecordingSession(self._clock(), max_duration, silence_duration, threshold)
        self.handle = self.capture.open(device_id, on_chunk=session.append)
        self.session = session
        self.state = RecorderState.AWAITING_SOUND
        logger.info(f"Recording started: device={device_id}, max={max_duration}s, "
                    f"silence={silence_duration}s, threshold={threshold}")

    def poll(self) -> Optional[StopReason]:
        """Run one tick; returns the stop reason once the recording should end."""
        session = self.session
        if session is None or self.state in (RecorderState.IDLE, RecorderState.STOPPED):
            return session.stop_reason if session else None

        now = self._clock()
        amplitude = self.handle.amplitude if self.handle else 0.0

        if amplitude > session.threshold:
            if not session.sound_detected:
                logger.debug(f"Sound detected at {now - session.started_at:.2f}s")
            session.sound_detected = True
            session.silence_started_at = None
            self.state = RecorderState.AWAITING_SOUND
        elif session.sound_detected:
            if session.silence_started_at is None:
                session.silence_started_at = now
                self.state = RecorderState.TIMING_SILENCE
            elif now - session.silence_started_at >= session.silence_duration:
                session.stop_reason = StopReason.SILENCE

        if now - session.started_at >= session.max_duration:
            session.stop_reason = StopReason.TIMEOUT

        if session.stop_reason is not None:
            self.state = RecorderState.STOPPED
            logger.info(f"Recording stop condition: {session.stop_reason.value} "
                        f"after {now - session.started_at:.2f}s")
        return session.stop_reason

    def stop(self) -> Optional[np.ndarray]:
        """Close the device and hand over the samples; None means no audio."""
        session, handle = self.session, self.handle
        self.session = None
        self.handle = None
        self.state = RecorderState.IDLE
        if session is None:
            return None

        session.recording = False
        try:
            self.capture.close(handle)
        except DeviceError as e:
            logger.warning(f"Keeping recorded audio despite close failure: {e}")
        samples = session.take_samples()

        if samples is None:
            logger.info("Recording stopped with no audio")
        else:
            logger.info(f"Recording stopped: {len(samples) / SAMPLE_RATE:.2f}s of audio")
        return samples

    def record_until_silence(self, max_duration: float = 15.0, silence_duration: float = 1.0,
                             threshold: float = 0.001,
                             device_id: int = DEFAULT_DEVICE) -> RecordingOutcome:
        """Record until silence follows speech, or until max_duration elapses."""
        self.start(device_id, max_duration, silence_duration, threshold)
        started_at = self.session.started_at
        stop_reason = None
        try:
            while stop_reason is None:
                self._sleep(self.poll_interval)
                stop_reason = self.poll()
        finally:
            duration = self._clock() - started_at
            samples = self.stop()
        return RecordingOutcome(samples=samples, stop_reason=stop_reason,
                                duration_seconds=duration)

    def record_for(self, duration: float, device_id: int = DEFAULT_DEVICE) -> RecordingOutcome:
        """Record for a fixed duration, ignoring silence."""
        if duration <= 0:
            raise ValueError("Recording duration must be positive")
        # A threshold above full scale never registers sound.
        return self.record_until_silence(max_duration=duration, silence_duration=duration,
                                         threshold=float("inf"), device_id=device_id)
