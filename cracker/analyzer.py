"""
Recursive call graph construction.

Starting from one entry function, repeatedly:

1. locate the module's source file (dead end if it isn't in the project)
2. index the file's definitions and extract the target's calls
3. drop duplicates, ignored callees and callees outside the project
4. record an edge per surviving callee and recurse into it

Calls through a runtime receiver ("Dynamic.conn.assign/2") are kept as
leaves: they get an edge but are never explored. The visited set guarantees
termination on recursive and mutually recursive functions.

Key functions:
- generate_graph(signature, project_dir, ...) - one full analysis session
- analyze_function(signature, session) - recursive driver
- filter_project_calls(calls, session) - dedup, ignore and existence checks
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .cache import AnalysisCache, Finder, open_cache
from .config import IgnoreFilter
from .extractor import extract_function_calls
from .locator import ensure_ripgrep
from .signature import Signature

logger = logging.getLogger(__name__)

Edge = tuple[str, str]

# Fewer static candidates than this are checked inline
MIN_CANDIDATES_FOR_PARALLEL = 2


@dataclass
class AnalysisSession:
    """State owned by one analysis run."""

    cache: AnalysisCache
    ignore: IgnoreFilter = field(default_factory=IgnoreFilter)
    # Clause line for the entry function only; cleared once used
    line: int | None = None
    executor: Optional[Executor] = None
    visited: set[str] = field(default_factory=set)
    edges: list[Edge] = field(default_factory=list)

    def add_edges(self, caller: Signature, callees: Iterable[Signature]) -> None:
        for callee in callees:
            self.edges.append((caller.canonical, callee.canonical))

    def unique_edges(self) -> list[Edge]:
        """Edges in discovery order without duplicates."""
        return list(dict.fromkeys(self.edges))


def analyze_function(signature: Signature, session: AnalysisSession) -> None:
    """Explore `signature` and everything it transitively calls in the project."""
    key = signature.canonical
    if key in session.visited:
        return
    session.visited.add(key)

    line, session.line = session.line, None

    path = session.cache.get_source_file(signature.module)
    if path is None:
        logger.debug(f"{signature.module} is not part of the project, stopping at {key}")
        return

    module_definitions, parsed = session.cache.get_module_definitions(path, signature.module)
    calls = extract_function_calls(parsed, signature, module_definitions, line)
    project_calls = filter_project_calls(calls, session)
    logger.debug(f"{key}: {len(calls)} call(s), {len(project_calls)} in project")

    session.add_edges(signature, project_calls)

    for call in project_calls:
        if not call.is_dynamic:
            analyze_function(call, session)


def filter_project_calls(calls: list[Signature], session: AnalysisSession) -> list[Signature]:
    """Keep unique, non-ignored calls that stay inside the project.

    Dynamic calls can't be located and are always kept. Static calls are
    checked against the source locator; those run concurrently when the
    session has an executor.
    """
    candidates = [
        call for call in dict.fromkeys(calls) if not session.ignore.matches(call.canonical)
    ]
    static = [call for call in candidates if not call.is_dynamic]

    def in_project(call: Signature) -> bool:
        return session.cache.get_source_file(call.module) is not None

    if session.executor is not None and len(static) >= MIN_CANDIDATES_FOR_PARALLEL:
        found = list(session.executor.map(in_project, static))
    else:
        found = [in_project(call) for call in static]
    resolved = {call for call, ok in zip(static, found) if ok}

    return [call for call in candidates if call.is_dynamic or call in resolved]


def generate_graph(
    signature: Signature | str,
    project_dir: str | Path,
    ignore_modules: Iterable[str] = (),
    line: int | None = None,
    max_workers: int | None = None,
    finder: Optional[Finder] = None,
) -> list[Edge]:
    """Build the call graph of `signature` within `project_dir`.

    Args:
        signature: Entry function, as a Signature or "Module.function/arity"
        project_dir: Root of the Elixir project
        ignore_modules: Patterns of callees to leave out (see IgnoreFilter)
        line: Source line of the entry clause, to pick one of several clauses
        max_workers: Threads for the existence checks (executor default if None)
        finder: Replacement for the ripgrep source locator

    Returns:
        (caller, callee) canonical signature pairs in discovery order

    Raises:
        RipgrepNotFoundError: If the default finder is used and rg is missing
        ParseError: If a project file does not parse
        ValueError: If `signature` is a malformed string
    """
    if finder is None:
        ensure_ripgrep()
    if isinstance(signature, str):
        signature = Signature.parse(signature)

    ignore = IgnoreFilter(ignore_modules)
    logger.info(f"Analyzing {signature} in {project_dir}")

    with open_cache(project_dir, finder) as cache, ThreadPoolExecutor(
        max_workers=max_workers, thread_name_prefix="cracker-locate"
    ) as executor:
        session = AnalysisSession(cache=cache, ignore=ignore, line=line, executor=executor)
        analyze_function(signature, session)
        edges = session.unique_edges()
        stats = cache.stats

    logger.info(
        f"Found {len(edges)} edge(s) across {len(session.visited)} function(s) "
        f"(cache: {stats.hits} hits, {stats.misses} misses)"
    )
    return edges
