"""Unit tests for the faster-whisper model context."""

from types import SimpleNamespace
from unittest.mock import Mock, patch

import numpy as np
import pytest

from voicequery.errors import ModelError
from voicequery.transcription import faster_whisper_backend
from voicequery.transcription.faster_whisper_backend import FasterWhisperContext, load_faster_whisper_context


def whisper_segment(start, end, text, probabilities):
    words = [SimpleNamespace(word=f"w{i}", probability=p) for i, p in enumerate(probabilities)]
    return SimpleNamespace(start=start, end=end, text=text, words=words)


@pytest.fixture
def whisper_model():
    model = Mock()
    model.model.is_multilingual = True
    segments = [whisper_segment(0.0, 1.0, " hello", [0.9, 0.8]), whisper_segment(1.0, 2.0, " world", [])]
    model.transcribe.return_value = (iter(segments), SimpleNamespace(language="en"))
    return model


@pytest.mark.unit
class TestFasterWhisperContext:
    """Test cases for FasterWhisperContext class."""

    def test_run_materializes_segments(self, whisper_model):
        """Test segments are consumed into engine output inside one call."""
        context = FasterWhisperContext(whisper_model, "/models/tiny")

        output = context.run(np.zeros(16000, dtype=np.float32), language=None, translate=False)

        assert output.status == 0
        assert output.language == "en"
        assert [s.text for s in output.segments] == ["hello", "world"]
        assert [t.probability for t in output.segments[0].tokens] == [0.9, 0.8]
        assert output.segments[1].tokens == []
        kwargs = whisper_model.transcribe.call_args.kwargs
        assert kwargs["task"] == "transcribe"
        assert kwargs["language"] is None
        assert kwargs["word_timestamps"] is True

    def test_translate_task(self, whisper_model):
        """Test translation selects the translate task."""
        FasterWhisperContext(whisper_model, "/models/tiny").run(np.zeros(10, dtype=np.float32),
                                                                 language="de", translate=True)
        kwargs = whisper_model.transcribe.call_args.kwargs
        assert kwargs["task"] == "translate"
        assert kwargs["language"] == "de"

    def test_multilingual_flag(self, whisper_model):
        """Test the multilingual flag comes from the loaded model."""
        whisper_model.model.is_multilingual = False
        assert not FasterWhisperContext(whisper_model, "/models/tiny.en").is_multilingual


@pytest.mark.unit
class TestLoadContext:
    """Test cases for loading faster-whisper contexts."""

    def test_missing_model_directory(self, temp_data_dir):
        """Test a missing model directory raises ModelError."""
        with pytest.raises(ModelError, match="Model not found"):
            load_faster_whisper_context(f"{temp_data_dir}/absent")

    def test_loads_with_device_and_threads(self, temp_data_dir):
        """Test the model is built with device and thread settings."""
        module = Mock()
        with patch.object(faster_whisper_backend, "import_module", return_value=module):
            context = load_faster_whisper_context(temp_data_dir, use_gpu=True, threads=6)

        module.WhisperModel.assert_called_once_with(temp_data_dir, device="cuda",
                                                    compute_type="float16", cpu_threads=6)
        assert context.use_gpu
        assert context.threads == 6

    def test_load_failure(self, temp_data_dir):
        """Test engine load failures become ModelError."""
        module = Mock()
        module.WhisperModel.side_effect = RuntimeError("Unable to open file 'model.bin'")
        with patch.object(faster_whisper_backend, "import_module", return_value=module):
            with pytest.raises(ModelError, match="model.bin"):
                load_faster_whisper_context(temp_data_dir)

    def test_engine_not_installed(self, temp_data_dir):
        """Test a missing faster-whisper install raises ModelError."""
        with patch.object(faster_whisper_backend, "import_module", side_effect=ModuleNotFoundError()):
            with pytest.raises(ModelError, match="pip install faster-whisper"):
                load_faster_whisper_context(temp_data_dir)
