"""Tests for parsing and definition indexing."""

import pytest


class TestIndexDefinitions:
    """Tests for index_definitions."""

    def test_public_and_private(self, parse):
        """def and defp both count."""
        from cracker.definitions import index_definitions

        parsed = parse(
            """
            defmodule App.Utils do
              def format(x), do: helper(x, 1)

              defp helper(x, n) do
                {x, n}
              end
            end
            """
        )
        assert index_definitions(parsed) == {"App.Utils": {("format", 1), ("helper", 2)}}

    def test_zero_arity_and_guards(self, parse):
        """Heads without parens are arity 0; guards don't add arguments."""
        from cracker.definitions import index_definitions

        parsed = parse(
            """
            defmodule App.Math do
              def zero do
                0
              end

              def abs(x) when x < 0, do: -x
              def abs(x), do: x

              def scale(x, factor \\\\ 2), do: x * factor
            end
            """
        )
        assert index_definitions(parsed)["App.Math"] == {("zero", 0), ("abs", 1), ("scale", 2)}

    def test_nested_modules_do_not_leak(self, parse):
        """A nested module's functions stay in the nested module."""
        from cracker.definitions import index_definitions

        parsed = parse(
            """
            defmodule Outer do
              def before, do: :ok

              defmodule Inner do
                def inner_fun(a), do: a
              end

              def after_inner, do: :ok
            end

            defmodule Sibling do
              def sib(a, b), do: {a, b}
            end
            """
        )
        index = index_definitions(parsed)
        assert index["Outer"] == {("before", 0), ("after_inner", 0)}
        assert index["Inner"] == {("inner_fun", 1)}
        assert index["Sibling"] == {("sib", 2)}

    def test_definitions_outside_module_ignored(self, parse):
        """Script-level defs belong to no module."""
        from cracker.definitions import index_definitions

        parsed = parse(
            """
            IO.puts("hello")
            """
        )
        assert index_definitions(parsed) == {}

    def test_function_bodies_not_indexed(self, parse):
        """Calls inside bodies are not mistaken for definitions."""
        from cracker.definitions import index_definitions

        parsed = parse(
            """
            defmodule App.Worker do
              def run(x) do
                process(x)
                Enum.map(x, &to_string/1)
              end
            end
            """
        )
        assert index_definitions(parsed)["App.Worker"] == {("run", 1)}


class TestExtractModuleDefinitions:
    """Tests for file-level extraction."""

    def test_returns_index_and_tree(self, make_project):
        from cracker.definitions import extract_module_definitions

        project = make_project(
            {"lib/app/client.ex": "defmodule App.Client do\n  def post(data, opts), do: {data, opts}\nend\n"}
        )
        path = project / "lib/app/client.ex"
        index, parsed = extract_module_definitions(path, "App.Client")

        assert index == {"App.Client": {("post", 2)}}
        assert parsed.path == str(path)
        assert parsed.root.type == "source"

    def test_parse_error_names_file(self, make_project):
        """A broken file is a fatal error that names the path."""
        from cracker.definitions import extract_module_definitions
        from cracker.parsing import ParseError

        project = make_project({"lib/broken.ex": "defmodule Broken do\n  def run(x do\nend\n"})
        path = project / "lib/broken.ex"

        with pytest.raises(ParseError) as exc_info:
            extract_module_definitions(path, "Broken")
        assert str(path) in str(exc_info.value)
        assert isinstance(exc_info.value, ValueError)

    def test_non_utf8_source_names_file(self, tmp_path):
        """Undecodable bytes fail the same way as a syntax error."""
        from cracker.definitions import extract_module_definitions
        from cracker.parsing import ParseError

        path = tmp_path / "latin1.ex"
        path.write_bytes(b'defmodule Latin do\n  def run, do: "caf\xe9"\nend\n')

        with pytest.raises(ParseError) as exc_info:
            extract_module_definitions(path, "Latin")
        assert exc_info.value.path == str(path)
        assert exc_info.value.line == 2
