"""
Function signatures: the unit of identity for call graph nodes.

A signature is the Elixir MFA triple (module, function, arity). Its canonical
string form is "Module.function/arity" with any leading "Elixir." namespace
prefix stripped, which is what edges and the visited set are keyed on.
"""

from __future__ import annotations

from dataclasses import dataclass

ELIXIR_PREFIX = "Elixir."
DYNAMIC_PREFIX = "Dynamic."


def strip_namespace(name: str) -> str:
    """Drop the "Elixir." prefix Elixir puts in front of module atoms."""
    if name.startswith(ELIXIR_PREFIX):
        return name[len(ELIXIR_PREFIX):]
    return name


@dataclass(frozen=True)
class Signature:
    """An Elixir function identified by module, name and arity."""

    module: str
    function: str
    arity: int

    @property
    def canonical(self) -> str:
        return strip_namespace(f"{self.module}.{self.function}/{self.arity}")

    @property
    def is_dynamic(self) -> bool:
        """True for calls through a receiver that can't be resolved statically."""
        return self.module.startswith(DYNAMIC_PREFIX)

    @classmethod
    def parse(cls, text: str) -> "Signature":
        """Parse "Module.function/arity" (optionally quoted, optionally "Elixir."-prefixed).

        Args:
            text: Signature string such as "MyApp.UserController.create/2"

        Returns:
            Signature with the namespace prefix removed from the module

        Raises:
            ValueError: If the string has no module part or a bad arity
        """
        cleaned = text.strip().strip("\"'")
        head, sep, arity_text = cleaned.rpartition("/")
        if not sep:
            raise ValueError(f"Invalid signature '{text}': expected Module.function/arity")

        module, dot, function = head.rpartition(".")
        module = strip_namespace(module)
        if not dot or not module or not function:
            raise ValueError(f"Invalid signature '{text}': expected Module.function/arity")

        try:
            arity = int(arity_text)
        except ValueError:
            raise ValueError(f"Invalid arity '{arity_text}' in signature '{text}'") from None
        if arity < 0:
            raise ValueError(f"Invalid arity '{arity_text}' in signature '{text}'")

        return cls(module, function, arity)

    def __str__(self) -> str:
        return self.canonical
