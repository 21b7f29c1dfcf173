"""Output nodes for the talon template AST."""

from __future__ import annotations

from dataclasses import dataclass

from talon.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Data(Node):
    """Literal text between tags."""

    value: str


@dataclass(frozen=True, slots=True)
class Command(Node):
    """Registered command: <% name arg, arg %> or <%= expr %>

    ``arguments`` is raw Python source for the argument list.
    """

    name: str
    arguments: str
