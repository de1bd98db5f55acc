"""Catalog of recognition models and their local storage."""

import logging
import shutil
from importlib import import_module
from pathlib import Path
from typing import Dict, List

from ..errors import ConfigError, ModelError
from ..models.catalog import ModelInfo

logger = logging.getLogger(__name__)

MODEL_DESCRIPTIONS: Dict[str, str] = {
    "tiny": "Tiny multilingual model (~75MB, fastest)",
    "tiny.en": "Tiny English-only model (~75MB, fastest)",
    "base": "Base multilingual model (~142MB)",
    "base.en": "Base English-only model (~142MB)",
    "small": "Small multilingual model (~466MB)",
    "small.en": "Small English-only model (~466MB)",
    "medium": "Medium multilingual model (~1.5GB)",
    "medium.en": "Medium English-only model (~1.5GB)",
    "large-v1": "Large multilingual model v1 (~2.9GB, most accurate)",
    "large-v2": "Large multilingual model v2 (~2.9GB, most accurate)",
    "large-v3": "Large multilingual model v3 (~2.9GB, most accurate)",
    "large-v3-turbo": "Large multilingual model v3 turbo (~1.6GB, fast + accurate)",
}

AVAILABLE_MODELS: List[str] = list(MODEL_DESCRIPTIONS)

# A converted model directory is usable once its weights are present.
MODEL_WEIGHTS_FILE = "model.bin"


def is_valid_model_name(name: str) -> bool:
    return name in MODEL_DESCRIPTIONS


def _require_valid(name: str) -> None:
    if not is_valid_model_name(name):
        raise ConfigError(f"Unknown model '{name}'. Available models: {', '.join(AVAILABLE_MODELS)}")


def get_model_path(name: str, base_path: str) -> str:
    """Directory holding the model files: ``<base_path>/<name>``."""
    _require_valid(name)
    return str(Path(base_path).expanduser() / name)


def is_model_downloaded(name: str, base_path: str) -> bool:
    return (Path(get_model_path(name, base_path)) / MODEL_WEIGHTS_FILE).is_file()


def _directory_size(path: Path) -> int:
    return sum(f.stat().st_size for f in path.rglob("*") if f.is_file())


def get_model_info(name: str, base_path: str) -> ModelInfo:
    path = Path(get_model_path(name, base_path))
    downloaded = is_model_downloaded(name, base_path)
    return ModelInfo(
        name=name,
        file_path=str(path),
        file_size=_directory_size(path) if downloaded else 0,
        is_downloaded=downloaded,
        description=MODEL_DESCRIPTIONS[name],
    )


def list_models(base_path: str) -> List[ModelInfo]:
    return [get_model_info(name, base_path) for name in AVAILABLE_MODELS]


def resolve_model_path(name: str, base_path: str) -> str:
    """Path of a downloaded model, or ModelError explaining how to get it."""
    path = get_model_path(name, base_path)
    if not is_model_downloaded(name, base_path):
        raise ModelError(f"Model '{name}' not found at {path}. "
                         f"Download it with: voicequery download-model {name}")
    return path


def download_model(name: str, base_path: str) -> ModelInfo:
    """Fetch a converted model from the Hugging Face hub into ``base_path``."""
    _require_valid(name)
    target = Path(get_model_path(name, base_path))
    if is_model_downloaded(name, base_path):
        logger.info(f"Model {name} already downloaded at {target}")
        return get_model_info(name, base_path)

    try:
        faster_whisper = import_module("faster_whisper")
    except ModuleNotFoundError as e:
        raise ModelError("faster-whisper is not installed. Install with: pip install faster-whisper") from e

    target.mkdir(parents=True, exist_ok=True)
    logger.info(f"Downloading model {name} to {target}")
    try:
        faster_whisper.download_model(name, output_dir=str(target))
    except Exception as e:
        raise ModelError(f"Failed to download model '{name}': {e}") from e

    if not is_model_downloaded(name, base_path):
        raise ModelError(f"Download of model '{name}' did not produce {MODEL_WEIGHTS_FILE}")
    info = get_model_info(name, base_path)
    logger.info(f"Model {name} downloaded ({info.file_size} bytes)")
    return info


def delete_model(name: str, base_path: str) -> bool:
    """Remove a downloaded model; returns False when it was not present."""
    path = Path(get_model_path(name, base_path))
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except OSError as e:
        raise ModelError(f"Failed to delete model '{name}': {e}") from e
    logger.info(f"Deleted model {name} from {path}")
    return True
