"""Structured expression nodes for the talon template AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from talon.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Template(Node):
    """Root node of a compiled template."""

    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Branch(Node):
    """Subkeyword clause: {% else %}, {% none %}, {% single %}, ...

    Attached to its Expression's ``branches`` (if/each style) or kept
    inline in the expression body (with/while style), where it registers
    itself at the point it appears.
    """

    name: str
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Expression(Node):
    """One structured expression: {% if ... %}...{% /if %}

    ``arguments`` is whatever the expression kind parsed from its tag.
    ``body`` is None for kinds without a body (print, trim).
    """

    kind: str
    arguments: Any
    body: Sequence[Node] | None = None
    branches: Sequence[Branch] = ()


@dataclass(frozen=True, slots=True)
class Break(Node):
    """{% break %} or {% break if %}: leave the enclosing expression."""

    target: str | None = None
