"""Microphone capture through PyAudio with per-chunk RMS publishing."""

import logging
import threading
from typing import Any, Callable, List, Optional

import numpy as np

from ..errors import DeviceError
from ..models.audio import AudioDevice

try:
    import pyaudio
except ImportError:  # pragma: no cover - depends on PortAudio being installed
    pyaudio = None  # type: ignore

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
CHANNELS = 1
CHUNK_SIZE = 1024
DEFAULT_DEVICE = -1

# PortAudio is initialized lazily, at most once per process, and never
# terminated: streams may still be draining on other threads at exit.
_pyaudio_instance = None
_pyaudio_lock = threading.Lock()


def _get_pyaudio():
    """Return the process-wide PyAudio instance, creating it on first use."""
    global _pyaudio_instance
    with _pyaudio_lock:
        if _pyaudio_instance is None:
            if pyaudio is None:
                raise DeviceError("PyAudio is not installed. Install with: pip install pyaudio")
            try:
                _pyaudio_instance = pyaudio.PyAudio()
            except Exception as e:
                raise DeviceError(f"Failed to initialize audio subsystem: {e}") from e
            logger.info("Audio subsystem initialized")
        return _pyaudio_instance


def compute_rms(samples: np.ndarray) -> float:
    """Root-mean-square amplitude of a float sample chunk (0.0 for empty chunks)."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


def pcm16_to_float(data: bytes) -> np.ndarray:
    """Convert signed 16-bit PCM bytes to float32 samples in [-1, 1)."""
    return np.frombuffer(data, dtype=np.int16).astype(np.float32) / 32768.0


class CaptureHandle:
    """An open input stream.

    ``amplitude`` holds the RMS of the most recent chunk. It is written by the
    PortAudio callback thread and read by whoever polls it; only the latest
    value is kept.
    """

    def __init__(self, device_id: int, on_chunk: Optional[Callable[[np.ndarray], None]] = None):
        self.device_id = device_id
        self.on_chunk = on_chunk
        self.amplitude = 0.0
        self.total_chunks = 0
        self.stream: Any = None
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self.stream is not None and not self._closed

    def _on_audio(self, in_data: bytes, frame_count: int, time_info: Any, status: Any):
        """PortAudio stream callback: runs on a platform-owned thread."""
        samples = pcm16_to_float(in_data)
        if samples.size:
            self.amplitude = compute_rms(samples)
            self.total_chunks += 1
            if self.on_chunk is not None:
                self.on_chunk(samples)
        return (None, pyaudio.paContinue)

    def close(self) -> None:
        """Stop and close the stream. Safe to call more than once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            stream, self.stream = self.stream, None
        if stream is None:
            return
        try:
            stream.stop_stream()
            stream.close()
        except Exception as e:
            raise DeviceError(f"Failed to close audio device {self.device_id}: {e}") from e
        logger.info(f"Audio stream closed after {self.total_chunks} chunks")


class DeviceCapture:
    """Enumerates input devices and opens 16 kHz mono capture streams."""

    def __init__(self, sample_rate: int = SAMPLE_RATE, chunk_size: int = CHUNK_SIZE):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size

    def list_devices(self) -> List[AudioDevice]:
        """Capture-capable devices in index order; empty if audio cannot initialize."""
        try:
            audio = _get_pyaudio()
        except DeviceError as e:
            logger.warning(f"Cannot enumerate audio devices: {e}")
            return []

        devices = []
        for index in range(audio.get_device_count()):
            info = audio.get_device_info_by_index(index)
            max_input_channels = info.get("maxInputChannels", 0)
            if isinstance(max_input_channels, (int, float)) and max_input_channels > 0:
                devices.append(AudioDevice(id=index, name=str(info.get("name", f"device {index}"))))
        logger.debug(f"Found {len(devices)} capture devices")
        return devices

    def open(self, device_id: int = DEFAULT_DEVICE,
             on_chunk: Optional[Callable[[np.ndarray], None]] = None) -> CaptureHandle:
        """Open and start a capture stream; device_id -1 selects the system default."""
        audio = _get_pyaudio()
        handle = CaptureHandle(device_id, on_chunk)

        stream_kwargs = {
            "format": pyaudio.paInt16,
            "channels": CHANNELS,
            "rate": self.sample_rate,
            "input": True,
            "frames_per_buffer": self.chunk_size,
            "stream_callback": handle._on_audio,
        }
        if device_id >= 0:
            stream_kwargs["input_device_index"] = device_id

        try:
            handle.stream = audio.open(**stream_kwargs)
        except (OSError, ValueError) as e:
            raise DeviceError(f"Failed to open audio device {device_id}: {e}") from e

        try:
            handle.stream.start_stream()
        except (OSError, ValueError) as e:
            stream, handle.stream = handle.stream, None
            handle._closed = True
            try:
                stream.close()
            except Exception as close_error:
                logger.warning(f"Failed to release audio device {device_id}: {close_error}")
            raise DeviceError(f"Failed to start audio device {device_id}: {e}") from e

        logger.info(f"Audio stream opened: device={device_id}, {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")
        return handle

    def close(self, handle: Optional[CaptureHandle]) -> None:
        """Close a handle returned by open(); idempotent."""
        if handle is not None:
            handle.close()
