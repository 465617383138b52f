"""
Elixir parsing via tree-sitter.

Owns the (cached) tree-sitter parser for Elixir and the small set of syntax
helpers the definition indexer and call extractor share: reading node text,
pulling call targets and arguments apart, and decoding `def` heads.

tree-sitter-elixir shapes this module relies on:

    Foo.bar(1)          (call target: (dot left: (alias) right: (identifier)) (arguments ...))
    map.key             (call target: (dot ...))                  # no arguments node
    helper(x)           (call target: (identifier) (arguments ...))
    x |> f()            (binary_operator left: ... operator: "|>" right: (call ...))
    def f(x) when g     (call target: (identifier) (arguments (binary_operator ... "when" ...)) (do_block))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import tree_sitter
import tree_sitter_elixir

logger = logging.getLogger(__name__)

# Source file extensions handled by the analyzer
ELIXIR_EXTENSIONS: frozenset[str] = frozenset({".ex", ".exs"})

# Definition forms that count as functions of a module
DEFINITION_KEYWORDS: frozenset[str] = frozenset({"def", "defp"})

# Creating a tree-sitter parser is comparatively expensive; build it once.
_PARSER_CACHE: dict[str, tree_sitter.Parser] = {}


class ParseError(ValueError):
    """Raised when a source file does not parse cleanly."""

    def __init__(self, path: str, line: int | None = None):
        self.path = path
        self.line = line
        location = f"{path}:{line}" if line is not None else path
        super().__init__(f"Failed to parse Elixir source: {location}")


@dataclass
class ParsedSource:
    """A parsed file: raw bytes plus the tree built from them."""

    path: str
    source: bytes = field(repr=False)
    tree: tree_sitter.Tree = field(repr=False)

    @property
    def root(self) -> tree_sitter.Node:
        return self.tree.root_node


@dataclass
class FunctionHead:
    """Decoded head of a `def`/`defp` clause."""

    name: str
    arity: int
    line: int
    body: list[tree_sitter.Node] = field(default_factory=list, repr=False)


def get_parser() -> tree_sitter.Parser:
    """Get or create the cached Elixir parser."""
    parser = _PARSER_CACHE.get("elixir")
    if parser is None:
        language = tree_sitter.Language(tree_sitter_elixir.language())
        parser = tree_sitter.Parser(language)
        _PARSER_CACHE["elixir"] = parser
    return parser


def parse_source(source: bytes, path: str = "<string>") -> ParsedSource:
    """Parse Elixir source strictly.

    tree-sitter always produces a tree, recovering from syntax errors with
    ERROR/MISSING nodes. Any such node makes the whole file unusable here.

    Raises:
        ParseError: If the source is not UTF-8 or the tree contains an error node
    """
    try:
        source.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(path, source.count(b"\n", 0, e.start) + 1) from e

    tree = get_parser().parse(source)
    if tree.root_node.has_error:
        raise ParseError(path, _first_error_line(tree.root_node))
    return ParsedSource(path=path, source=source, tree=tree)


def parse_file(path: str | Path) -> ParsedSource:
    """Read and strictly parse an Elixir file."""
    path = Path(path)
    logger.debug(f"Parsing {path}")
    return parse_source(path.read_bytes(), str(path))


def _first_error_line(node: tree_sitter.Node) -> int | None:
    if node.type == "ERROR" or node.is_missing:
        return node.start_point[0] + 1
    for child in node.children:
        if child.has_error:
            return _first_error_line(child)
    return None


def node_text(node: tree_sitter.Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8")


def line_of(node: tree_sitter.Node) -> int:
    """1-based line a node starts on."""
    return node.start_point[0] + 1


def call_target(node: tree_sitter.Node) -> tree_sitter.Node | None:
    if node.type != "call":
        return None
    return node.child_by_field_name("target")


def call_name(node: tree_sitter.Node, source: bytes) -> str | None:
    """Name of a local call (`name(...)` / `name ...`), None for remote calls."""
    target = call_target(node)
    if target is None or target.type != "identifier":
        return None
    return node_text(target, source)


def call_arguments(node: tree_sitter.Node) -> tree_sitter.Node | None:
    for child in node.children:
        if child.type == "arguments":
            return child
    return None


def argument_nodes(node: tree_sitter.Node) -> list[tree_sitter.Node]:
    """Argument expressions of a call; a trailing keyword list counts as one."""
    arguments = call_arguments(node)
    if arguments is None:
        return []
    return [child for child in arguments.named_children if child.type != "comment"]


def do_block(node: tree_sitter.Node) -> tree_sitter.Node | None:
    for child in node.children:
        if child.type == "do_block":
            return child
    return None


def call_arity(node: tree_sitter.Node) -> int:
    """Arity as Elixir sees it: a `do ... end` block is one more keyword argument."""
    arity = len(argument_nodes(node))
    if do_block(node) is not None:
        arity += 1
    return arity


def is_operator(node: tree_sitter.Node, operator: str) -> bool:
    if node.type != "binary_operator":
        return False
    op = node.child_by_field_name("operator")
    return op is not None and op.type == operator


def module_name(node: tree_sitter.Node, source: bytes) -> str | None:
    """Module declared by a `defmodule` call, as written."""
    args = argument_nodes(node)
    if not args or args[0].type != "alias":
        return None
    return node_text(args[0], source)


def parse_function_head(node: tree_sitter.Node, source: bytes) -> FunctionHead | None:
    """Decode a `def`/`defp` call into name, arity, line and body nodes.

    Handles `def f(a, b)`, `def f` (zero arity, no parens), guarded heads
    (`def f(x) when x > 0`) and both `do ... end` and `, do:` bodies.
    Heads built with unquote or other macros return None.
    """
    args = argument_nodes(node)
    if not args:
        return None

    head = args[0]
    if is_operator(head, "when"):
        head = head.child_by_field_name("left")
        if head is None:
            return None

    if head.type == "identifier":
        name, arity = node_text(head, source), 0
    elif head.type == "call":
        name = call_name(head, source)
        if name is None:
            return None
        arity = len(argument_nodes(head))
    else:
        return None

    block = do_block(node)
    body = [block] if block is not None else args[1:]
    return FunctionHead(name=name, arity=arity, line=line_of(node), body=body)
