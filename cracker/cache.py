"""Session-scoped memoization for the analyzer.

Two stores, both keyed by module name:

1. **source-file-by-module**: where a module is declared (ripgrep lookups)
2. **definitions-by-module**: the parsed tree plus definition index of that file

Example usage:
    from cracker.cache import open_cache

    with open_cache("/path/to/project") as cache:
        path = cache.get_source_file("MyApp.Accounts")
        index, parsed = cache.get_module_definitions(path, "MyApp.Accounts")

The cache lives exactly as long as one analysis session and is cleared on
exit even if the analysis raises.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, TypeVar, cast

from .definitions import DefinitionIndex, extract_module_definitions
from .locator import find_source_file
from .parsing import ParsedSource

logger = logging.getLogger(__name__)

T = TypeVar("T")
Finder = Callable[[str, str], Optional[str]]
ModuleDefinitions = Tuple[DefinitionIndex, ParsedSource]


@dataclass
class CacheStats:
    """Statistics for cache lookups."""

    hits: int = 0
    misses: int = 0
    computations: int = 0


class AnalysisCache:
    """Get-or-compute stores shared by one analysis session.

    Thread-safe for concurrent access with fine-grained locking.
    Lock is only held during store access, NOT while computing a value, so
    ripgrep lookups for different modules run in parallel. A miss is computed
    exactly once: other threads asking for the same key wait for it.
    """

    def __init__(self, project_dir: str | Path, finder: Optional[Finder] = None) -> None:
        self.project_dir = str(project_dir)
        self._finder: Finder = finder or find_source_file
        self._lock = threading.RLock()
        self._thread_local = threading.local()

        self._source_files: Dict[str, Optional[str]] = {}
        self._definitions: Dict[str, ModuleDefinitions] = {}

        # (store, key) -> Event set once the owning thread finished computing
        self._in_flight: Dict[Tuple[str, str], threading.Event] = {}

        self._stats = CacheStats()
        self._closed = False

    # -------------------------------------------------------------------------
    # Thread-local state accessors (no lock needed - per-thread)
    # -------------------------------------------------------------------------

    @property
    def _shadow(self) -> Dict[str, ModuleDefinitions]:
        """Definitions already fetched by the current thread.

        Lets repeated lookups on the driving thread skip the shared store.
        """
        if not hasattr(self._thread_local, "definitions"):
            self._thread_local.definitions = {}
        return cast(Dict[str, ModuleDefinitions], self._thread_local.definitions)

    # -------------------------------------------------------------------------
    # Stores
    # -------------------------------------------------------------------------

    def get_source_file(self, module: str) -> Optional[str]:
        """Path of the file declaring `module`, or None if not in the project."""
        return self._get_or_compute(
            "source_file",
            self._source_files,
            module,
            lambda: self._finder(module, self.project_dir),
        )

    def get_module_definitions(self, file_path: str, module: str) -> ModuleDefinitions:
        """Definition index and parsed tree for the file declaring `module`.

        Raises:
            ParseError: If the file does not parse cleanly
        """
        shadow = self._shadow
        if module in shadow:
            with self._lock:
                self._check_open()
                self._stats.hits += 1
            return shadow[module]

        result = self._get_or_compute(
            "module_defs",
            self._definitions,
            module,
            lambda: extract_module_definitions(file_path, module),
        )
        shadow[module] = result
        return result

    def _get_or_compute(self, store_name: str, store: Dict[str, Any], key: str, compute: Callable[[], T]) -> T:
        flight_key = (store_name, key)

        while True:
            with self._lock:
                self._check_open()
                if key in store:
                    self._stats.hits += 1
                    return cast(T, store[key])

                wait_event = self._in_flight.get(flight_key)
                if wait_event is None:
                    completion_event = threading.Event()
                    self._in_flight[flight_key] = completion_event
                    self._stats.misses += 1

            if wait_event is None:
                break
            # Another thread is computing this key; its result lands in the
            # store, or it failed and the next round computes here.
            wait_event.wait()

        try:
            value = compute()
            with self._lock:
                store[key] = value
                self._stats.computations += 1
            return value
        finally:
            with self._lock:
                if self._in_flight.get(flight_key) is completion_event:
                    del self._in_flight[flight_key]
            completion_event.set()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return dataclasses.replace(self._stats)

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Analysis cache used after it was closed")

    def close(self) -> None:
        """Drop every store. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._source_files.clear()
            self._definitions.clear()
            self._in_flight.clear()
            self._thread_local = threading.local()
            logger.debug(
                f"Cache closed: {self._stats.hits} hits, {self._stats.misses} misses, "
                f"{self._stats.computations} computations"
            )

    def __enter__(self) -> "AnalysisCache":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


@contextmanager
def open_cache(project_dir: str | Path, finder: Optional[Finder] = None) -> Iterator[AnalysisCache]:
    """Create a cache for one session and always tear it down afterwards."""
    cache = AnalysisCache(project_dir, finder)
    try:
        yield cache
    finally:
        cache.close()
