"""Unit tests for ModelContextCache."""

import threading

import pytest

from voicequery.errors import ModelError
from voicequery.transcription.context_cache import ModelContextCache


@pytest.mark.unit
class TestModelContextCache:
    """Test cases for ModelContextCache class."""

    def test_same_key_returns_identical_handle(self, make_loader):
        """Test one key yields the same loaded context."""
        loader = make_loader()
        cache = ModelContextCache(loader)

        first = cache.get_or_load("/models/base.en")
        second = cache.get_or_load("/models/base.en")

        assert first is second
        assert len(loader.calls) == 1

    def test_gpu_preference_is_part_of_the_key(self, make_loader):
        """Test GPU and CPU loads of one model are cached separately."""
        cache = ModelContextCache(make_loader())

        cpu = cache.get_or_load("/models/base.en", use_gpu=False)
        gpu = cache.get_or_load("/models/base.en", use_gpu=True)

        assert cpu is not gpu
        assert len(cache) == 2

    def test_invalid_path_fails_every_time_without_corrupting_cache(self, make_loader):
        """Test a failing load leaves other entries usable."""
        loader = make_loader(failing={"/missing"})
        cache = ModelContextCache(loader)
        good = cache.get_or_load("/models/tiny")

        for _ in range(2):
            with pytest.raises(ModelError, match="Model not found"):
                cache.get_or_load("/missing")

        assert cache.get_or_load("/models/tiny") is good
        assert cache.get_or_load("/models/base") is not None
        assert ("/missing", False) not in cache

    def test_failed_reload_is_not_cached(self, make_loader):
        """Test a failed load is retried on the next request."""
        loader = make_loader()
        cache = ModelContextCache(loader)
        original = cache.get_or_load("/models/tiny")

        cache.evict("/models/tiny")
        loader.failing.add("/models/tiny")
        with pytest.raises(ModelError):
            cache.get_or_load("/models/tiny")
        loader.failing.clear()

        reloaded = cache.get_or_load("/models/tiny")
        assert reloaded is not original
        # Holders of the evicted handle keep a usable context
        assert original.model_path == "/models/tiny"

    def test_unexpected_loader_error_becomes_model_error(self, make_loader):
        """Test unexpected loader errors are wrapped in ModelError."""
        def broken_loader(model_path, use_gpu, threads):
            raise RuntimeError("corrupt weights")

        cache = ModelContextCache(broken_loader)
        with pytest.raises(ModelError, match="corrupt weights"):
            cache.get_or_load("/models/tiny")
        assert len(cache) == 0

    def test_thread_count_passed_on_first_load(self, make_loader):
        """Test the thread count reaches the loader on first load."""
        loader = make_loader()
        cache = ModelContextCache(loader)
        cache.get_or_load("/models/tiny", threads=4)
        cache.get_or_load("/models/tiny", threads=2)
        assert loader.calls == [("/models/tiny", False, 4)]

    def test_evict_variants(self, make_loader):
        """Test eviction removes only the matching key."""
        cache = ModelContextCache(make_loader())
        cache.get_or_load("/models/tiny", use_gpu=False)
        cache.get_or_load("/models/tiny", use_gpu=True)
        cache.get_or_load("/models/base")

        assert cache.evict("/models/tiny", use_gpu=True) == 1
        assert cache.evict("/models/tiny") == 1
        assert cache.evict("/models/tiny") == 0
        assert cache.keys() == [("/models/base", False)]

    def test_evict_all(self, make_loader):
        """Test evicting everything empties the cache."""
        cache = ModelContextCache(make_loader())
        cache.get_or_load("/models/tiny")
        cache.get_or_load("/models/base")
        assert cache.evict_all() == 2
        assert len(cache) == 0

    def test_shutdown_refuses_further_loads(self, make_loader):
        """Test a shut down cache refuses new loads."""
        cache = ModelContextCache(make_loader())
        handle = cache.get_or_load("/models/tiny")
        cache.shutdown()

        assert len(cache) == 0
        assert handle.model_path == "/models/tiny"
        with pytest.raises(ModelError, match="shut down"):
            cache.get_or_load("/models/tiny")

    def test_concurrent_loads_of_one_key_load_once(self, make_loader):
        """Test concurrent requests for one key load it once."""
        loader = make_loader(delay=0.05)
        cache = ModelContextCache(loader)
        results = []

        def load():
            results.append(cache.get_or_load("/models/tiny"))

        threads = [threading.Thread(target=load) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(loader.calls) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_handles_carry_inference_lock(self, make_loader):
        """Test each loaded context carries its own inference lock."""
        handle = ModelContextCache(make_loader()).get_or_load("/models/tiny")
        assert not handle.inference_lock.locked()
