"""Shared fixtures: small on-disk Elixir projects and a ripgrep-free finder."""

import re
import textwrap
from pathlib import Path

import pytest


def python_finder(module: str, project_dir: str) -> str | None:
    """Same search as the ripgrep locator, done in Python."""
    pattern = re.compile(rf"defmodule\s+{re.escape(module)}\s+")
    for path in sorted(Path(project_dir).rglob("*.ex")):
        if pattern.search(path.read_text()):
            return str(path)
    return None


@pytest.fixture
def finder():
    return python_finder


@pytest.fixture
def make_project(tmp_path):
    """Write {relative_path: source} into a temporary project directory."""

    def _make(files: dict[str, str]) -> Path:
        for rel, source in files.items():
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(source))
        return tmp_path

    return _make


@pytest.fixture
def parse():
    """Parse a dedented Elixir snippet."""
    from cracker.parsing import parse_source

    def _parse(code: str):
        return parse_source(textwrap.dedent(code).encode("utf-8"), "snippet.ex")

    return _parse
