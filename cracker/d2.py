"""D2 diagram rendering of call graph edges.

Each module becomes a container of `function_arity` nodes; calls within a
module are drawn inside its container and calls across modules are listed
at the end.
"""

from __future__ import annotations

import re
from typing import Iterable

from .signature import Signature


def node_id(signature: Signature) -> str:
    return f"{signature.function}_{signature.arity}"


def container_id(module: str) -> str:
    """D2 key for a module container; keys keep to word characters."""
    return re.sub(r"\W", "_", module)


def generate(edges: Iterable[tuple[str, str]]) -> str:
    """Render (caller, callee) canonical signature pairs as D2 markup."""
    pairs = [(Signature.parse(caller), Signature.parse(callee)) for caller, callee in edges]

    functions_by_module: dict[str, list[Signature]] = {}
    for pair in pairs:
        for sig in pair:
            functions = functions_by_module.setdefault(sig.module, [])
            if sig not in functions:
                functions.append(sig)

    internal = [(a, b) for a, b in pairs if a.module == b.module]
    external = [(a, b) for a, b in pairs if a.module != b.module]

    lines = ["direction: right", "# Function call graph"]
    for module, functions in functions_by_module.items():
        lines.append(f"{container_id(module)}: {module} {{")
        for sig in functions:
            lines.append(f"  {node_id(sig)}: {sig.function}/{sig.arity}")
        for caller, callee in internal:
            if caller.module == module:
                lines.append(f"  {node_id(caller)} -> {node_id(callee)}")
        lines.append("}")

    lines.append("")
    lines.append("# Connections")
    for caller, callee in external:
        lines.append(
            f"{container_id(caller.module)}.{node_id(caller)} -> "
            f"{container_id(callee.module)}.{node_id(callee)}"
        )

    return "\n".join(lines) + "\n"
