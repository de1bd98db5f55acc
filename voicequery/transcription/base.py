"""Abstract model context and the engine output it produces."""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np


@dataclass
class EngineToken:
    """A decoded token with its probability; special tokens are not scored."""
    probability: float
    special: bool = False


@dataclass
class EngineSegment:
    start: float  # seconds
    end: float    # seconds
    text: str
    tokens: List[EngineToken] = field(default_factory=list)
    language: Optional[str] = None


@dataclass
class EngineOutput:
    """Raw engine result; a non-zero status means inference failed."""
    status: int = 0
    segments: List[EngineSegment] = field(default_factory=list)
    language: Optional[str] = None


class ModelContext(ABC):
    """A loaded recognition model shared by every holder.

    Instances are effectively immutable after construction. Callers must hold
    ``inference_lock`` around ``run`` since concurrent inference on one
    context is not known to be safe.
    """

    def __init__(self, model_path: str, use_gpu: bool = False, threads: int = 0):
        self.model_path = model_path
        self.use_gpu = use_gpu
        self.threads = threads
        self.inference_lock = threading.Lock()

    @property
    @abstractmethod
    def is_multilingual(self) -> bool:
        """Whether the model supports language detection and translation."""

    @abstractmethod
    def run(self, samples: np.ndarray, language: Optional[str] = None,
            translate: bool = False) -> EngineOutput:
        """Run one full inference pass over 16 kHz mono float samples.

        Args:
            samples: Audio samples in [-1, 1]
            language: Language code, or None to auto-detect
            translate: Translate to English instead of transcribing

        Returns:
            EngineOutput with every segment materialized
        """
