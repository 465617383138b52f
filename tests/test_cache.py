"""Tests for the session cache."""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest


class TestSourceFileStore:
    """Tests for get_source_file."""

    def test_miss_computes_once(self):
        """Repeated lookups hit the store."""
        from cracker.cache import AnalysisCache

        finder = MagicMock(return_value="/proj/lib/app.ex")
        cache = AnalysisCache("/proj", finder=finder)

        assert cache.get_source_file("App") == "/proj/lib/app.ex"
        assert cache.get_source_file("App") == "/proj/lib/app.ex"

        finder.assert_called_once_with("App", "/proj")
        assert cache.stats.misses == 1
        assert cache.stats.hits == 1

    def test_not_found_is_cached(self):
        """A module outside the project is only searched for once."""
        from cracker.cache import AnalysisCache

        finder = MagicMock(return_value=None)
        cache = AnalysisCache("/proj", finder=finder)

        assert cache.get_source_file("Enum") is None
        assert cache.get_source_file("Enum") is None
        assert finder.call_count == 1

    def test_concurrent_lookups_compute_once(self):
        """Threads asking for the same module wait for one computation."""
        from cracker.cache import AnalysisCache

        calls = []
        lock = threading.Lock()

        def slow_finder(module, project_dir):
            with lock:
                calls.append(module)
            time.sleep(0.05)
            return f"/proj/{module}.ex"

        cache = AnalysisCache("/proj", finder=slow_finder)
        results = []

        def worker():
            results.append(cache.get_source_file("App.Shared"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls == ["App.Shared"]
        assert results == ["/proj/App.Shared.ex"] * 8

    def test_failed_computation_not_stored(self):
        """An exception propagates and the next lookup computes again."""
        from cracker.cache import AnalysisCache

        finder = MagicMock(side_effect=[OSError("boom"), "/proj/app.ex"])
        cache = AnalysisCache("/proj", finder=finder)

        with pytest.raises(OSError):
            cache.get_source_file("App")
        assert cache.get_source_file("App") == "/proj/app.ex"


class TestDefinitionsStore:
    """Tests for get_module_definitions."""

    def test_parsed_once_per_module(self, make_project):
        from cracker.cache import AnalysisCache
        from cracker.definitions import extract_module_definitions

        project = make_project({"lib/m.ex": "defmodule M do\n  def a, do: :ok\nend\n"})
        path = str(project / "lib/m.ex")
        cache = AnalysisCache(project, finder=MagicMock())

        with patch(
            "cracker.cache.extract_module_definitions", wraps=extract_module_definitions
        ) as extract:
            first = cache.get_module_definitions(path, "M")
            second = cache.get_module_definitions(path, "M")

        assert extract.call_count == 1
        assert first is second
        assert first[0] == {"M": {("a", 0)}}

    def test_other_thread_uses_shared_store(self, make_project):
        """A second thread has its own shadow but reuses the shared result."""
        from cracker.cache import AnalysisCache

        project = make_project({"lib/m.ex": "defmodule M do\n  def a, do: :ok\nend\n"})
        path = str(project / "lib/m.ex")
        cache = AnalysisCache(project, finder=MagicMock())

        first = cache.get_module_definitions(path, "M")
        seen = []
        thread = threading.Thread(target=lambda: seen.append(cache.get_module_definitions(path, "M")))
        thread.start()
        thread.join()

        assert seen[0] is first
        assert cache.stats.computations == 1


class TestLifecycle:
    """Tests for close and open_cache."""

    def test_close_clears_and_blocks_use(self):
        from cracker.cache import AnalysisCache

        cache = AnalysisCache("/proj", finder=MagicMock(return_value=None))
        cache.get_source_file("App")
        cache.close()

        assert cache.closed
        with pytest.raises(RuntimeError):
            cache.get_source_file("App")

    def test_close_is_idempotent(self):
        from cracker.cache import AnalysisCache

        cache = AnalysisCache("/proj", finder=MagicMock())
        cache.close()
        cache.close()
        assert cache.closed

    def test_open_cache_closes_on_error(self):
        """Teardown runs even when the session fails."""
        from cracker.cache import open_cache

        with pytest.raises(ValueError):
            with open_cache("/proj", finder=MagicMock()) as cache:
                raise ValueError("analysis failed")
        assert cache.closed

    def test_context_manager(self):
        from cracker.cache import AnalysisCache

        with AnalysisCache("/proj", finder=MagicMock()) as cache:
            assert not cache.closed
        assert cache.closed
