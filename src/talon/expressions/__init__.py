"""Structured expression kinds ({% if %}, {% each %}, {% with %}, ...)."""

from talon.expressions.base import Branch, Expression
from talon.expressions.kinds import (
    Block,
    Break,
    Each,
    If,
    Macro,
    MacroDefinition,
    Print,
    Subkeyword,
    Trim,
    While,
    With,
)
from talon.expressions.registry import ExpressionRegistry

__all__ = [
    "Block",
    "Branch",
    "Break",
    "Each",
    "Expression",
    "ExpressionRegistry",
    "If",
    "Macro",
    "MacroDefinition",
    "Print",
    "Subkeyword",
    "Trim",
    "While",
    "With",
]
