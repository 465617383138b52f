"""Tests for the ripgrep source locator."""

import shutil
import subprocess
from unittest.mock import patch

import pytest

requires_rg = pytest.mark.skipif(shutil.which("rg") is None, reason="ripgrep not installed")


class TestEnsureRipgrep:
    """Tests for the startup precondition."""

    def test_missing(self):
        from cracker.locator import RipgrepNotFoundError, ensure_ripgrep

        with patch("cracker.locator.shutil.which", return_value=None):
            with pytest.raises(RipgrepNotFoundError, match="brew install ripgrep"):
                ensure_ripgrep()

    def test_present(self):
        from cracker.locator import ensure_ripgrep

        with patch("cracker.locator.shutil.which", return_value="/usr/bin/rg"):
            assert ensure_ripgrep() == "/usr/bin/rg"


class TestModulePattern:
    def test_escapes_dots_and_strips_prefix(self):
        from cracker.locator import module_pattern

        assert module_pattern("Elixir.App.Utils") == r"defmodule\s+App\.Utils\s+"


class TestFindSourceFile:
    """Tests for find_source_file with subprocess mocked."""

    def _completed(self, returncode, stdout="", stderr=""):
        return subprocess.CompletedProcess(args=["rg"], returncode=returncode, stdout=stdout, stderr=stderr)

    def test_first_match(self):
        from cracker.locator import find_source_file

        result = self._completed(0, "/p/lib/a.ex\n/p/lib/b.ex\n")
        with patch("cracker.locator.subprocess.run", return_value=result) as run:
            assert find_source_file("App.Utils", "/p") == "/p/lib/a.ex"

        cmd = run.call_args[0][0]
        assert cmd[:2] == ["rg", "--type"]
        assert "--files-with-matches" in cmd
        assert cmd[-2:] == [r"defmodule\s+App\.Utils\s+", "/p"]

    def test_no_match(self):
        from cracker.locator import find_source_file

        with patch("cracker.locator.subprocess.run", return_value=self._completed(1)):
            assert find_source_file("Enum", "/p") is None

    def test_error_without_output(self):
        from cracker.locator import find_source_file

        result = self._completed(2, stderr="No such file or directory")
        with patch("cracker.locator.subprocess.run", return_value=result):
            assert find_source_file("App", "/missing") is None


@requires_rg
class TestFindSourceFileWithRipgrep:
    """Tests against the real rg binary."""

    def test_finds_declaring_file(self, make_project):
        from cracker.locator import find_source_file

        project = make_project(
            {
                "lib/app/utils.ex": "defmodule App.Utils do\nend\n",
                "lib/app/utils_test_helper.ex": "defmodule App.UtilsHelper do\nend\n",
            }
        )
        assert find_source_file("App.Utils", project) == str(project / "lib/app/utils.ex")

    def test_dot_is_literal(self, make_project):
        """"App.Utils" must not match "AppXUtils"."""
        from cracker.locator import find_source_file

        project = make_project({"lib/x.ex": "defmodule AppXUtils do\nend\n"})
        assert find_source_file("App.Utils", project) is None
