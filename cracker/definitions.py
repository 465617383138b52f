"""
Definition indexing: which functions each module in a file defines.

The index is used by the call extractor to tell a bare call to a sibling
function (`helper(x)`) apart from a local variable or a Kernel built-in.
"""

from __future__ import annotations

import logging
from pathlib import Path

import tree_sitter

from .parsing import (
    DEFINITION_KEYWORDS,
    ParsedSource,
    call_name,
    module_name,
    parse_file,
    parse_function_head,
)

logger = logging.getLogger(__name__)

# module -> {(function, arity)}
DefinitionIndex = dict[str, set[tuple[str, int]]]


def index_definitions(parsed: ParsedSource) -> DefinitionIndex:
    """Index every `def`/`defp` of every module in a parsed file.

    A `defmodule` sets the current module for its own subtree only, so nested
    modules never leak into their siblings. Function bodies are not descended.
    Definitions outside of any module (scripts) are ignored.
    """
    index: DefinitionIndex = {}
    source = parsed.source

    def walk(node: tree_sitter.Node, current_module: str | None) -> None:
        name = call_name(node, source) if node.type == "call" else None

        if name == "defmodule":
            declared = module_name(node, source)
            if declared is not None:
                index.setdefault(declared, set())
                current_module = declared

        elif name in DEFINITION_KEYWORDS:
            head = parse_function_head(node, source)
            if head is not None and current_module is not None:
                index.setdefault(current_module, set()).add((head.name, head.arity))
            return

        for child in node.named_children:
            walk(child, current_module)

    walk(parsed.root, None)
    return index


def extract_module_definitions(
    file_path: str | Path, module: str
) -> tuple[DefinitionIndex, ParsedSource]:
    """Parse a module's file and index its definitions.

    This is the unit of work the cache memoizes per module.

    Raises:
        ParseError: If the file does not parse cleanly
    """
    parsed = parse_file(file_path)
    index = index_definitions(parsed)
    defined = len(index.get(module, ()))
    logger.debug(f"Indexed {file_path}: {len(index)} module(s), {defined} function(s) in {module}")
    return index, parsed
