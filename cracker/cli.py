#!/usr/bin/env python3
"""
code-cracker CLI - function call graphs for Elixir projects.

Usage:
    cracker graph <Module.function/arity> [--project DIR]   Render a call graph
    cracker doctor                                          Check required tools
"""

import argparse
import importlib.util
import json
import logging
import os
import shutil
import sys
from pathlib import Path

from . import __version__
from .config import OUTPUT_FORMATS, load_config


def _validate_path(path: str, must_be_dir: bool = False) -> Path:
    """Validate a path with consistent error handling.

    Raises:
        SystemExit: If validation fails (prints error to stderr)
    """
    p = Path(path)
    if not p.exists():
        print(f"Error: Path not found: {path}", file=sys.stderr)
        sys.exit(1)
    if must_be_dir and not p.is_dir():
        print(f"Error: Not a directory: {path}", file=sys.stderr)
        sys.exit(1)
    return p


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2 or os.environ.get("CRACKER_DEBUG"):
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _render(edges: list[tuple[str, str]], fmt: str) -> str:
    if fmt == "d2":
        from .d2 import generate
    elif fmt == "json":
        return json.dumps([list(edge) for edge in edges], indent=2, ensure_ascii=False) + "\n"
    else:
        from .mermaid import generate
    return generate(edges)


def _run_graph(args: argparse.Namespace) -> None:
    from .analyzer import generate_graph
    from .locator import ensure_ripgrep
    from .signature import Signature

    signature = Signature.parse(args.signature)
    project = _validate_path(args.project, must_be_dir=True).resolve()

    # Fail before any analysis starts
    ensure_ripgrep()

    config = load_config(project)
    fmt = args.format or config.format
    ignore = config.ignore_modules + (args.ignore or [])
    workers = args.workers or config.max_workers

    edges = generate_graph(
        signature,
        project,
        ignore_modules=ignore,
        line=args.line,
        max_workers=workers,
    )
    output = _render(edges, fmt)

    if args.output:
        Path(args.output).write_text(output)
        print(f"Wrote {len(edges)} edge(s) to {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(output)


def _run_doctor(args: argparse.Namespace) -> None:
    from .locator import RIPGREP_INSTALL_HELP

    rg_path = shutil.which("rg")
    checks = {
        "ripgrep": {
            "installed": rg_path is not None,
            "path": rg_path,
        },
        "tree_sitter_elixir": {
            "installed": importlib.util.find_spec("tree_sitter_elixir") is not None,
        },
    }

    if args.json:
        print(json.dumps(checks, indent=2, ensure_ascii=False))
    else:
        print("code-cracker Diagnostics Check")
        print("=" * 50)
        if rg_path:
            print(f"   rg - {rg_path}")
        else:
            print("   rg - not found")
            print(RIPGREP_INSTALL_HELP)
        if checks["tree_sitter_elixir"]["installed"]:
            print("   tree-sitter-elixir - installed")
        else:
            print("   tree-sitter-elixir - not found")
            print("     pip install tree-sitter-elixir")

    if not all(check["installed"] for check in checks.values()):
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="cracker",
        description="Function call graphs for Elixir projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Version: %(prog)s """
        + __version__
        + """

Examples:
    cracker graph MyApp.UserController.create/2                # Mermaid to stdout
    cracker graph "Elixir.MyApp.Orders.place/1" --format d2    # D2 markup
    cracker graph MyApp.Orders.place/1 --line 42               # One clause only
    cracker graph MyApp.Orders.place/1 --ignore Repo .changeset "re:^Ecto\\."

Configuration:
    Defaults are read from .cracker/config.json in the project:
    {"ignore_modules": ["Repo"], "format": "mermaid", "max_workers": 8}

Requires ripgrep (rg) on PATH.
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr (-vv for debug output)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # cracker graph <signature>
    graph_p = subparsers.add_parser(
        "graph",
        help="Generate a function call graph",
        description="Follow every call from an entry function through the project.",
        epilog="Example: cracker graph MyApp.Accounts.register/2 --format d2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    graph_p.add_argument("signature", help="Entry function as Module.function/arity")
    graph_p.add_argument(
        "--project", "-p", default=".", help="Project root (default: current directory)"
    )
    graph_p.add_argument(
        "--format", "-f", choices=OUTPUT_FORMATS, default=None,
        help="Output format (default: from config, else mermaid)",
    )
    graph_p.add_argument(
        "--line", type=int, default=None, help="Line of the entry clause to analyze"
    )
    graph_p.add_argument(
        "--ignore", nargs="+", metavar="PATTERN",
        help="Skip callees matching these patterns (substring, or re:<regex>)",
    )
    graph_p.add_argument(
        "--workers", type=int, default=None, help="Threads for source lookups"
    )
    graph_p.add_argument("--output", "-o", help="Write to a file instead of stdout")

    # cracker doctor
    doctor_p = subparsers.add_parser(
        "doctor",
        help="Check required tools",
        description="Check that ripgrep and the Elixir grammar are available.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    doctor_p.add_argument("--json", action="store_true", help="Output as JSON")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        if args.command == "graph":
            _run_graph(args)
        elif args.command == "doctor":
            _run_doctor(args)

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
