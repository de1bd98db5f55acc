"""Pytest configuration and fixtures for voicequery tests."""

import asyncio
import logging
import socket
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import MagicMock, Mock, patch

import numpy as np
import pytest
from aiohttp import web

from voicequery.audio import capture as capture_module
from voicequery.transcription.base import EngineOutput, EngineSegment, EngineToken, ModelContext

# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000


def pytest_addoption(parser):
    parser.addoption("--run-hardware", action="store_true", default=False,
                     help="Run tests that need a real microphone")


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "hardware: tests that need real audio hardware")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-hardware"):
        return
    skip_hardware = pytest.mark.skip(reason="needs --run-hardware")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def mock_pyaudio():
    """Replace the PyAudio module used by capture and reset the shared instance."""
    mock_module = MagicMock()
    mock_instance = Mock()
    mock_stream = Mock()

    mock_module.paInt16 = 8
    mock_module.paContinue = 0
    mock_module.PyAudio.return_value = mock_instance
    mock_instance.open.return_value = mock_stream

    with patch.object(capture_module, "pyaudio", mock_module), \
            patch.object(capture_module, "_pyaudio_instance", None):
        yield {
            'module': mock_module,
            'instance': mock_instance,
            'stream': mock_stream,
        }


@pytest.fixture
def audio_test_data():
    """Generate float32 audio at 16 kHz for testing."""
    def generate_audio(pattern="sine", duration_seconds=1.0, amplitude=0.5):
        samples = int(duration_seconds * SAMPLE_RATE)
        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            data = amplitude * np.sin(2 * np.pi * 440 * t)
        elif pattern == "constant":
            data = np.full(samples, amplitude)
        elif pattern == "silence":
            data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")
        return data.astype(np.float32)

    return generate_audio


class FakeHandle:
    """Stands in for CaptureHandle; amplitude is set by the timeline."""

    def __init__(self, device_id, on_chunk):
        self.device_id = device_id
        self.on_chunk = on_chunk
        self.amplitude = 0.0
        self.closed = False

    def close(self):
        self.closed = True


class FakeCapture:
    """DeviceCapture double whose streams are fed by a Timeline."""

    def __init__(self, timeline: "Timeline"):
        self.timeline = timeline
        self.handles: List[FakeHandle] = []
        self.open_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None

    def open(self, device_id=-1, on_chunk=None):
        if self.open_error is not None:
            raise self.open_error
        handle = FakeHandle(device_id, on_chunk)
        self.handles.append(handle)
        return handle

    def close(self, handle):
        if handle is not None:
            handle.close()
        if self.close_error is not None:
            raise self.close_error


class Timeline:
    """Simulated clock; each sleep delivers one chunk per open stream.

    ``trace`` maps the time a chunk starts to that chunk's amplitude.
    """

    def __init__(self, trace: Callable[[float], float] = lambda t: 0.0):
        self.now = 0.0
        self.trace = trace
        self.capture = FakeCapture(self)

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        start = self.now
        self.now = round(self.now + seconds, 9)
        amplitude = self.trace(start)
        for handle in self.capture.handles:
            if handle.closed:
                continue
            handle.amplitude = amplitude
            if handle.on_chunk is not None:
                samples = int(round(seconds * SAMPLE_RATE))
                handle.on_chunk(np.full(samples, amplitude, dtype=np.float32))


@pytest.fixture
def timeline():
    return Timeline()


@pytest.fixture
def make_recorder(timeline):
    """Build a SilenceGatedRecorder driven by the simulated timeline."""
    from voicequery.audio.recorder import SilenceGatedRecorder

    def factory(trace=None):
        if trace is not None:
            timeline.trace = trace
        return SilenceGatedRecorder(timeline.capture, poll_interval=0.05,
                                    clock=timeline.clock, sleep=timeline.sleep)

    return factory


class FakeModelContext(ModelContext):
    """Model context that returns a canned EngineOutput."""

    def __init__(self, model_path="fake-model", use_gpu=False, multilingual=True,
                 output: Optional[EngineOutput] = None, error: Optional[Exception] = None,
                 threads=0):
        super().__init__(model_path, use_gpu, threads)
        self.multilingual = multilingual
        self.output = output or EngineOutput(status=0, segments=[
            EngineSegment(start=0.0, end=1.2, text="show all users",
                          tokens=[EngineToken(0.9), EngineToken(0.7)], language="en"),
        ], language="en")
        self.error = error
        self.calls = []

    @property
    def is_multilingual(self) -> bool:
        return self.multilingual

    def run(self, samples, language=None, translate=False):
        self.calls.append({"samples": samples, "language": language, "translate": translate,
                           "lock_held": self.inference_lock.locked()})
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def fake_context():
    return FakeModelContext()


@pytest.fixture
def model_dir(temp_data_dir):
    """Model storage directory with base.en and tiny marked as downloaded."""
    for name in ("base.en", "tiny"):
        path = Path(temp_data_dir) / name
        path.mkdir()
        (path / "model.bin").write_bytes(b"\x00" * 128)
        (path / "config.json").write_text("{}")
    return temp_data_dir


@pytest.fixture
def settings(model_dir):
    from voicequery.config import WhisperSettings
    return WhisperSettings(model_path=model_dir)


class CountingLoader:
    """Context loader double that records calls and fails for configured paths."""

    def __init__(self, failing=(), delay=0.0, multilingual=True):
        self.failing = set(failing)
        self.delay = delay
        self.multilingual = multilingual
        self.calls = []

    def __call__(self, model_path, use_gpu, threads):
        from voicequery.errors import ModelError
        self.calls.append((model_path, use_gpu, threads))
        if self.delay:
            time.sleep(self.delay)
        if model_path in self.failing:
            raise ModelError(f"Model not found: {model_path}")
        return FakeModelContext(model_path, use_gpu, multilingual=self.multilingual, threads=threads)


@pytest.fixture
def make_loader():
    return CountingLoader


class TextToSqlServer:
    """Real aiohttp server on localhost running its own loop in a thread."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, name="TextToSqlServer", daemon=True)
        self.requests = []
        self.responder = self.default_responder
        self.runner = None
        self.port = None

    @staticmethod
    async def default_responder(request):
        return web.json_response({"sql": "SELECT 1"})

    @property
    def url(self):
        return f"http://127.0.0.1:{self.port}/generate-sql"

    def respond_with(self, status=200, text=None, json_body=None, delay=0.0):
        async def responder(request):
            if delay:
                await asyncio.sleep(delay)
            if json_body is not None:
                return web.json_response(json_body, status=status)
            return web.Response(text=text or "", status=status)
        self.responder = responder

    async def _handle(self, request):
        self.requests.append({"json": await request.json(), "headers": dict(request.headers)})
        return await self.responder(request)

    async def _start(self):
        app = web.Application()
        app.router.add_post("/generate-sql", self._handle)
        self.runner = web.AppRunner(app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "127.0.0.1", 0)
        await site.start()
        self.port = self.runner.addresses[0][1]

    def start(self):
        self.thread.start()
        asyncio.run_coroutine_threadsafe(self._start(), self.loop).result(timeout=5)
        return self

    def stop(self):
        asyncio.run_coroutine_threadsafe(self.runner.cleanup(), self.loop).result(timeout=10)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)
        self.loop.close()


@pytest.fixture
def text_to_sql_server():
    server = TextToSqlServer().start()
    yield server
    server.stop()


@pytest.fixture
def unused_port():
    """A localhost port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
