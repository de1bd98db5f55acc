"""Process-wide cache of loaded model contexts."""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import ModelError
from .base import ModelContext
from .faster_whisper_backend import load_faster_whisper_context

logger = logging.getLogger(__name__)

ContextLoader = Callable[[str, bool, int], ModelContext]
CacheKey = Tuple[str, bool]


class ModelContextCache:
    """Loads each (model_path, use_gpu) pair once and shares the handle.

    A single lock guards the whole cache, so loads of different models are
    serialized. Evicting only drops the cache's reference; holders keep a
    working handle.
    """

    def __init__(self, loader: ContextLoader = load_faster_whisper_context):
        self._loader = loader
        self._lock = threading.Lock()
        self._contexts: Dict[CacheKey, ModelContext] = {}
        self._shut_down = False

    def get_or_load(self, model_path: str, use_gpu: bool = False, threads: int = 0) -> ModelContext:
        key = (str(model_path), bool(use_gpu))
        with self._lock:
            if self._shut_down:
                raise ModelError("Model cache has been shut down")

            context = self._contexts.get(key)
            if context is not None:
                return context

            try:
                context = self._loader(key[0], key[1], threads)
            except ModelError:
                logger.error(f"Failed to load model context for {key}")
                raise
            except Exception as e:
                logger.error(f"Failed to load model context for {key}: {e}")
                raise ModelError(f"Failed to load model from {key[0]}: {e}") from e

            self._contexts[key] = context
            logger.info(f"Cached model context for {key} ({len(self._contexts)} cached)")
            return context

    def evict(self, model_path: str, use_gpu: Optional[bool] = None) -> int:
        """Drop cached contexts for a path; None evicts both CPU and GPU variants."""
        variants = (False, True) if use_gpu is None else (bool(use_gpu),)
        removed = 0
        with self._lock:
            for variant in variants:
                if self._contexts.pop((str(model_path), variant), None) is not None:
                    removed += 1
        if removed:
            logger.info(f"Evicted {removed} context(s) for {model_path}")
        return removed

    def evict_all(self) -> int:
        with self._lock:
            removed = len(self._contexts)
            self._contexts.clear()
        logger.info(f"Evicted all {removed} cached context(s)")
        return removed

    def shutdown(self) -> None:
        """Release every cached reference and refuse further loads."""
        with self._lock:
            self._contexts.clear()
            self._shut_down = True
        logger.info("Model context cache shut down")

    def keys(self) -> List[CacheKey]:
        with self._lock:
            return list(self._contexts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._contexts
