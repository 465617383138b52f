"""code-cracker: function call graphs for Elixir codebases."""

__version__ = "0.3.0"

__all__ = ["__version__", "AnalysisSession", "Signature", "analyze_function", "generate_graph"]

# The analyzer pulls in the tree-sitter grammar; `cracker doctor` must be able
# to start without it, so these are resolved on first access.
_LAZY_EXPORTS = {
    "AnalysisSession": ".analyzer",
    "analyze_function": ".analyzer",
    "generate_graph": ".analyzer",
    "Signature": ".signature",
}


def __getattr__(name: str):
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    import importlib

    value = getattr(importlib.import_module(module_name, __name__), name)
    globals()[name] = value
    return value
