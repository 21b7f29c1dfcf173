"""Statement compilation for the talon compiler.

Provides mixins for compiling talon AST nodes to Python AST statements.

The statements package is organized into logical modules:
- basic: Literal text, commands and raw Python (single tags and blocks)
- control_flow: Structured expressions, their branches and break

Uses inline TYPE_CHECKING declarations for host attributes.

"""

from __future__ import annotations

from talon.compiler.statements.basic import BasicStatementMixin
from talon.compiler.statements.control_flow import ControlFlowMixin


class StatementCompilationMixin(
    BasicStatementMixin,
    ControlFlowMixin,
):
    """Combined mixin for compiling all statement types.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks in each individual mixin.

    """
