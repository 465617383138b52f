"""
Source location: find the file that declares an Elixir module.

Uses ripgrep (`rg`) to search the project for `defmodule <Module>`. ripgrep
respects .gitignore, so dependencies under deps/ and build output under
_build/ are naturally excluded from the project.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from pathlib import Path

from .signature import strip_namespace

logger = logging.getLogger(__name__)

RIPGREP_INSTALL_HELP = """Ripgrep (rg) is not installed. Please install it:

- macOS: brew install ripgrep
- Ubuntu/Debian: sudo apt-get install ripgrep
- Windows: choco install ripgrep
"""


class RipgrepNotFoundError(RuntimeError):
    """The `rg` executable is not on PATH."""

    def __init__(self) -> None:
        super().__init__(RIPGREP_INSTALL_HELP)


def ensure_ripgrep() -> str:
    """Return the path of `rg`.

    Raises:
        RipgrepNotFoundError: If ripgrep is not installed
    """
    path = shutil.which("rg")
    if path is None:
        raise RipgrepNotFoundError()
    return path


def module_pattern(module: str) -> str:
    """Regex (ripgrep syntax) matching the declaration of `module`."""
    return rf"defmodule\s+{re.escape(strip_namespace(module))}\s+"


def find_source_file(module: str, project_dir: str | Path) -> str | None:
    """Find the file declaring `module` under `project_dir`.

    Args:
        module: Module name, with or without the "Elixir." prefix
        project_dir: Root directory to search

    Returns:
        Path of the first matching file (in path order), or None if the
        module isn't declared in the project
    """
    cmd = [
        "rg",
        "--type", "elixir",
        "--files-with-matches",
        "--sort", "path",
        module_pattern(module),
        str(project_dir),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)

    paths = [line for line in result.stdout.splitlines() if line]
    if paths:
        return paths[0]

    if result.returncode not in (0, 1):
        logger.debug(f"rg failed for {module} (exit {result.returncode}): {result.stderr.strip()}")
    else:
        logger.debug(f"No source file for {module}")
    return None
