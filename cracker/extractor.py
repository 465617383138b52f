"""
Call extraction: the calls one Elixir function makes.

Walks a parsed file looking for the clause(s) of a target function and
records the calls found in their bodies. The walk is a small state machine:

    SEARCHING ──(matching def entered)──> INSIDE_TARGET ──(clause left)──> COMPLETED

Recognised call shapes inside the target:

    Alias.fun(a, b)          qualified call, alias resolved       -> Mod.fun/2
    x |> Alias.fun(a)        piped qualified call                 -> Mod.fun/2
    conn.assign(k, v)        call through a runtime value         -> Dynamic.conn.assign/2
    @adapter.request(x)      call through a module attribute      -> Dynamic.@adapter.request/1
    x |> helper(a)           piped local call                     -> Cur.helper/2 (if defined)
    helper(a)                local call                           -> Cur.helper/1 (if defined)

Bare calls that the definition index doesn't know about are Kernel
built-ins, imports or variables holding functions, and are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

import tree_sitter

from .definitions import DefinitionIndex
from .parsing import (
    DEFINITION_KEYWORDS,
    ParsedSource,
    argument_nodes,
    call_arguments,
    call_arity,
    call_name,
    call_target,
    is_operator,
    module_name,
    node_text,
    parse_function_head,
)
from .signature import DYNAMIC_PREFIX, Signature

logger = logging.getLogger(__name__)

_MODULE_NAME = re.compile(r"(?:__MODULE__|[A-Z]\w*)(?:\.[A-Z]\w*)*")
_MULTI_ALIAS = re.compile(r"(.+)\.\{(.*)\}")


class WalkPhase(Enum):
    SEARCHING = "searching"
    INSIDE_TARGET = "inside_target"
    COMPLETED = "completed"


@dataclass
class TraversalState:
    """Mutable record for one extraction call. Never shared between calls."""

    target: Signature
    source: bytes = field(repr=False)
    module_definitions: DefinitionIndex = field(repr=False)
    line: int | None = None
    current_module: str | None = None
    phase: WalkPhase = WalkPhase.SEARCHING
    aliases: dict[str, str] = field(default_factory=dict)
    # (start byte of the call node, callee)
    calls: list[tuple[int, Signature]] = field(default_factory=list)
    # Ids of call nodes already accounted for by an enclosing pipe
    consumed: set[int] = field(default_factory=set)
    target_node_id: int | None = None
    clauses_matched: int = 0
    # Saved (module, aliases) of enclosing modules
    scopes: list[tuple[str | None, dict[str, str]]] = field(default_factory=list)

    def record(self, node: tree_sitter.Node, signature: Signature) -> None:
        self.calls.append((node.start_byte, signature))

    def ordered_calls(self) -> list[Signature]:
        return [signature for _, signature in sorted(self.calls, key=lambda c: c[0])]


def resolve_module(name: str, aliases: dict[str, str]) -> str:
    """Expand the first segment of a module reference through the alias table.

    >>> resolve_module("Utils.Format", {"Utils": "App.Utils"})
    'App.Utils.Format'
    """
    first, dot, rest = name.partition(".")
    full = aliases.get(first)
    if full is None:
        return name
    return f"{full}.{rest}" if dot else full


def extract_function_calls(
    parsed: ParsedSource,
    target: Signature,
    module_definitions: DefinitionIndex,
    line: int | None = None,
) -> list[Signature]:
    """Extract the calls made by `target` in a parsed file, in source order.

    Args:
        parsed: The file defining `target.module`
        target: Function whose body is scanned
        module_definitions: Definition index of the file
        line: Only scan the clause starting on this line. Without it every
            clause of the function is scanned and the calls are merged.

    Returns:
        Raw callees, possibly with duplicates
    """
    state = TraversalState(
        target=target,
        source=parsed.source,
        module_definitions=module_definitions,
        line=line,
    )
    _walk(parsed.root, state)

    if state.clauses_matched == 0:
        logger.debug(f"No clause of {target} found in {parsed.path}")
    return state.ordered_calls()


def _walk(node: tree_sitter.Node, state: TraversalState) -> None:
    if state.phase is WalkPhase.COMPLETED:
        return

    for child in _enter(node, state):
        _walk(child, state)
        if state.phase is WalkPhase.COMPLETED:
            return

    _leave(node, state)


def _enter(node: tree_sitter.Node, state: TraversalState) -> list[tree_sitter.Node]:
    """Pre-visit hook. Returns the children to descend into."""
    if node.type == "call":
        name = call_name(node, state.source)
        if name == "defmodule":
            _enter_module(node, state)
        elif name == "alias":
            _register_alias(node, state)
            return []
        elif name in DEFINITION_KEYWORDS and state.phase is WalkPhase.SEARCHING:
            return _enter_definition(node, state)
        elif state.phase is WalkPhase.INSIDE_TARGET:
            _record_call(node, state)

    elif state.phase is WalkPhase.INSIDE_TARGET and is_operator(node, "|>"):
        _record_pipe(node, state)

    return node.named_children


def _leave(node: tree_sitter.Node, state: TraversalState) -> None:
    """Post-visit hook."""
    if node.id == state.target_node_id:
        state.target_node_id = None
        if state.line is not None:
            state.phase = WalkPhase.COMPLETED
        else:
            state.phase = WalkPhase.SEARCHING

    elif node.type == "call" and call_name(node, state.source) == "defmodule":
        leaving = state.current_module
        state.current_module, state.aliases = state.scopes.pop()
        if leaving == state.target.module and state.clauses_matched:
            state.phase = WalkPhase.COMPLETED


def _enter_module(node: tree_sitter.Node, state: TraversalState) -> None:
    state.scopes.append((state.current_module, dict(state.aliases)))
    state.current_module = module_name(node, state.source)


def _enter_definition(node: tree_sitter.Node, state: TraversalState) -> list[tree_sitter.Node]:
    head = parse_function_head(node, state.source)
    target = state.target
    if (
        head is None
        or state.current_module != target.module
        or head.name != target.function
        or head.arity != target.arity
        or (state.line is not None and head.line != state.line)
    ):
        return []

    logger.debug(f"Entering {target} at {head.line}")
    state.phase = WalkPhase.INSIDE_TARGET
    state.target_node_id = node.id
    state.clauses_matched += 1
    return head.body


def _compact_text(node: tree_sitter.Node, source: bytes) -> str:
    return "".join(node_text(node, source).split())


def _expand_module(name: str, state: TraversalState) -> str | None:
    """Resolve a module reference written in the current scope."""
    if name.startswith("__MODULE__"):
        if state.current_module is None:
            return None
        return state.current_module + name[len("__MODULE__"):]
    return resolve_module(name, state.aliases)


def _keyword_value(nodes: list[tree_sitter.Node], key: str, source: bytes) -> tree_sitter.Node | None:
    for node in nodes:
        if node.type != "keywords":
            continue
        for pair in node.named_children:
            pair_key = pair.child_by_field_name("key")
            if pair_key is not None and node_text(pair_key, source).strip().rstrip(":") == key:
                return pair.child_by_field_name("value")
    return None


def _register_alias(node: tree_sitter.Node, state: TraversalState) -> None:
    """Handle `alias A.B`, `alias A.B, as: C` and `alias A.{B, C}`."""
    args = argument_nodes(node)
    if not args:
        return
    source = state.source
    written = _compact_text(args[0], source)

    multi = _MULTI_ALIAS.fullmatch(written)
    if multi:
        base = _expand_module(multi.group(1), state)
        if base is None:
            return
        for part in multi.group(2).split(","):
            if _MODULE_NAME.fullmatch(part):
                state.aliases[part.rsplit(".", 1)[-1]] = f"{base}.{part}"
        return

    if not _MODULE_NAME.fullmatch(written):
        return
    full = _expand_module(written, state)
    if full is None:
        return

    as_node = _keyword_value(args[1:], "as", source)
    if as_node is not None and as_node.type == "alias":
        short = node_text(as_node, source)
    else:
        short = full.rsplit(".", 1)[-1]
    state.aliases[short] = full


def _record_call(node: tree_sitter.Node, state: TraversalState) -> None:
    if node.id in state.consumed:
        return
    signature = _call_signature(node, state, piped=False)
    if signature is not None:
        state.record(node, signature)


def _record_pipe(node: tree_sitter.Node, state: TraversalState) -> None:
    right = node.child_by_field_name("right")
    if right is None or right.type != "call":
        return
    # The piped value is the implicit first argument
    state.consumed.add(right.id)
    signature = _call_signature(right, state, piped=True)
    if signature is not None:
        state.record(right, signature)


def _call_signature(node: tree_sitter.Node, state: TraversalState, piped: bool) -> Signature | None:
    target = call_target(node)
    if target is None:
        return None
    source = state.source
    arity = call_arity(node) + (1 if piped else 0)

    if target.type == "identifier":
        module = state.current_module
        function = node_text(target, source)
        if module is not None and (function, arity) in state.module_definitions.get(module, ()):
            return Signature(module, function, arity)
        return None

    if target.type != "dot":
        return None
    left = target.child_by_field_name("left")
    right = target.child_by_field_name("right")
    # `fun.(args)` has no right side; `:erlang.call()` has an atom receiver
    if left is None or right is None or right.type != "identifier":
        return None
    function = node_text(right, source)

    qualifier = _compact_text(left, source)
    if left.type in ("alias", "dot", "call", "identifier") and _MODULE_NAME.fullmatch(qualifier):
        module = _expand_module(qualifier, state)
        return Signature(module, function, arity) if module is not None else None

    receiver = _receiver_name(left, source)
    if receiver is None:
        return None
    if call_arguments(node) is None and not piped:
        # `map.key`: field access, not an invocation
        return None
    return Signature(f"{DYNAMIC_PREFIX}{receiver}", function, arity)


def _receiver_name(node: tree_sitter.Node, source: bytes) -> str | None:
    """Readable name of the value a dynamic call goes through.

    conn -> "conn", @adapter -> "@adapter", opts[:client] -> "opts",
    client() -> "client", Map.get(x, :k) -> "Map.get", state.repo -> "state.repo".
    Literals, tuples and anonymous functions give None.
    """
    if node.type == "identifier":
        return node_text(node, source)

    if node.type == "unary_operator":
        operator = node.child_by_field_name("operator")
        operand = node.child_by_field_name("operand")
        if operator is None or operator.type != "@" or operand is None or operand.type != "identifier":
            return None
        return f"@{node_text(operand, source)}"

    if node.type == "access_call":
        target = node.child_by_field_name("target")
        return _receiver_name(target, source) if target is not None else None

    if node.type != "call":
        return None
    target = call_target(node)
    if target is None:
        return None
    if target.type == "identifier":
        return node_text(target, source)
    if target.type != "dot":
        return None
    left = target.child_by_field_name("left")
    right = target.child_by_field_name("right")
    if left is None or right is None or right.type != "identifier":
        return None
    base = node_text(left, source) if left.type == "alias" else _receiver_name(left, source)
    return f"{base}.{node_text(right, source)}" if base else None
