"""
Mermaid flowchart rendering of call graph edges.

Layout: one dashed subgraph per module, inside it one subgraph per caller
holding that caller's callees chained in call order. Entry points (callers
nobody calls) sit outside and point at their module. A callee that is itself
explored gets a dotted link to its own caller box.

Example:
    edges = [
        ("MyApp.ModuleA.post/1", "MyApp.Client.post/2"),
        ("MyApp.ModuleA.post/1", "MyApp.ModuleA.persist_data/2"),
        ("MyApp.Client.post/2", "MyApp.Client.encode_query/2"),
    ]
    print(generate(edges))
"""

from __future__ import annotations

from typing import Iterable

from .signature import Signature


def generate(edges: Iterable[tuple[str, str]]) -> str:
    """Render (caller, callee) canonical signature pairs as a Mermaid flowchart."""
    pairs = [(Signature.parse(caller), Signature.parse(callee)) for caller, callee in edges]

    # caller -> callees, in discovery order
    callees_by_caller: dict[Signature, list[Signature]] = {}
    for caller, callee in pairs:
        callees_by_caller.setdefault(caller, []).append(callee)

    module_ids: dict[str, str] = {}
    function_ids: dict[Signature, str] = {}
    for pair in pairs:
        for sig in pair:
            module_ids.setdefault(sig.module, f"m{len(module_ids) + 1}")
            function_ids.setdefault(sig, f"f{len(function_ids) + 1}")

    callers_by_module: dict[str, list[Signature]] = {}
    for caller in callees_by_caller:
        callers_by_module.setdefault(caller.module, []).append(caller)

    called = {callee for _, callee in pairs}

    lines = ["flowchart LR", "  %% Function call graph"]

    # Entry points
    for caller in callees_by_caller:
        if caller not in called:
            lines.append(f'  {function_ids[caller]}["{caller.canonical}"]')
    lines.append("")

    for module, callers in callers_by_module.items():
        module_id = module_ids[module]
        lines.append(f'  subgraph {module_id}["{module}"]')
        lines.append(f"  style {module_id} stroke-dasharray: 5 5")
        for caller in callers:
            box = f"{function_ids[caller]}_box"
            callees = callees_by_caller[caller]
            lines.append(f'    subgraph {box}["{caller.function}/{caller.arity}"]')
            for callee in callees:
                label = (
                    f"{callee.function}/{callee.arity}" if callee.module == module else callee.canonical
                )
                lines.append(f'      {box}_{function_ids[callee]}["{label}"]')
            for first, second in zip(callees, callees[1:]):
                lines.append(f"      {box}_{function_ids[first]} --> {box}_{function_ids[second]}")
            lines.append("    end")
        lines.append("  end")

    lines.append("")
    lines.append("  %% External connections")
    for caller, callees in callees_by_caller.items():
        caller_id = function_ids[caller]
        if caller not in called:
            lines.append(f"  {caller_id} --> {module_ids[caller.module]}")
        for callee in callees:
            if callee not in callees_by_caller:
                continue
            source = f"{caller_id}_box_{function_ids[callee]}"
            if callee == caller:
                lines.append(f"  {source} --> {source}")
            else:
                lines.append(f"  {source} -.-> {function_ids[callee]}_box")

    return "\n".join(lines) + "\n"
