"""Raw Python pass-through nodes for the talon template AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from talon.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Code(Node):
    """Unrecognized tag content, executed as Python statements."""

    source: str


@dataclass(frozen=True, slots=True)
class CodeClause(Node):
    """One clause of a raw compound statement, e.g. ``for x in xs:``"""

    header: str
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class CodeBlock(Node):
    """Raw compound statement: <% if x: %>...<% else: %>...<% end %>"""

    clauses: Sequence[CodeClause]
