"""Control flow compilation for the talon compiler.

Provides mixin for compiling structured expressions, their subkeyword
branches and break tags.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from talon.nodes import Branch, Break, Expression, Node

_EXPRESSION = "_expression"


class ControlFlowMixin:
    """Mixin for compiling structured expressions.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.

    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        _depth: int

        # From Compiler core
        def _render_attr(self, attr: str) -> ast.Attribute: ...
        def _compile_body(self, body: Sequence[Node]) -> list[ast.stmt]: ...
        def _next_name(self, prefix: str) -> str: ...
        def _add_argument(self, value: Any) -> ast.expr: ...
        def _set_lines(self, stmts: Sequence[ast.AST], lineno: int) -> None: ...
        @staticmethod
        def _make_function(
            name: str, params: Sequence[str], body: list[ast.stmt], lineno: int
        ) -> ast.FunctionDef: ...

    def _make_body_function(self, prefix: str, body: Sequence[Node], lineno: int) -> ast.FunctionDef:
        """Nested ``def _prefix_N(vars, _expression)`` holding ``body``."""
        name = self._next_name(prefix)
        self._depth += 1
        try:
            stmts = self._compile_body(body)
        finally:
            self._depth -= 1
        func = self._make_function(name, ["vars", _EXPRESSION], stmts, lineno)
        if not stmts:
            self._set_lines(func.body, lineno)
        return func

    def _broken_check(self, lineno: int) -> list[ast.stmt]:
        """``if _expression.broken: return`` inside body functions.

        A break raised further down the stack stops the rest of this body.
        """
        if self._depth == 0:
            return []
        check = ast.If(
            test=ast.Attribute(
                value=ast.Name(id=_EXPRESSION, ctx=ast.Load()),
                attr="broken",
                ctx=ast.Load(),
            ),
            body=[ast.Return(value=None)],
            orelse=[],
        )
        self._set_lines([check], lineno)
        return [check]

    def _compile_expression(self, node: Expression) -> list[ast.stmt]:
        """Compile a structured expression.

        Generates:
            def _body_N(vars, _expression): ...
            def _else_N(vars, _expression): ...
            _render.start_expression('If', _args[i], vars, _body_N).branch('else', _else_N).close()
        """
        stmts: list[ast.stmt] = []
        call_args: list[ast.expr] = [
            ast.Constant(value=node.kind),
            self._add_argument(node.arguments),
            ast.Name(id="vars", ctx=ast.Load()),
        ]

        if node.body is not None:
            body_fn = self._make_body_function("body", node.body, node.lineno)
            stmts.append(body_fn)
            call_args.append(ast.Name(id=body_fn.name, ctx=ast.Load()))

        call: ast.expr = ast.Call(func=self._render_attr("start_expression"), args=call_args, keywords=[])

        for branch in node.branches:
            branch_fn = self._make_body_function(branch.name, branch.body, branch.lineno)
            stmts.append(branch_fn)
            call = self._method_call(
                call,
                "branch",
                ast.Constant(value=branch.name),
                ast.Name(id=branch_fn.name, ctx=ast.Load()),
            )

        call = self._method_call(call, "close")
        expr = ast.Expr(value=call)
        self._set_lines([expr], node.lineno)
        stmts.append(expr)
        stmts.extend(self._broken_check(node.lineno))
        return stmts

    def _compile_branch(self, node: Branch) -> list[ast.stmt]:
        """Compile an inline clause: _expression.branch('none', _none_N)

        The owning expression decides right away whether to run it.
        """
        branch_fn = self._make_body_function(node.name, node.body, node.lineno)
        register = ast.Expr(
            value=self._method_call(
                ast.Name(id=_EXPRESSION, ctx=ast.Load()),
                "branch",
                ast.Constant(value=node.name),
                ast.Name(id=branch_fn.name, ctx=ast.Load()),
            )
        )
        self._set_lines([register], node.lineno)
        return [branch_fn, register, *self._broken_check(node.lineno)]

    def _compile_break(self, node: Break) -> list[ast.stmt]:
        """Compile {% break %}: mark expressions broken, leave the body.

        At the top level there is no expression to break; the rest of the
        template is skipped.
        """
        stmts: list[ast.stmt] = []
        if self._depth > 0:
            args: list[ast.expr] = []
            if node.target is not None:
                args.append(ast.Constant(value=node.target))
            stmts.append(
                ast.Expr(value=self._method_call(ast.Name(id=_EXPRESSION, ctx=ast.Load()), "break_out", *args))
            )
        stmts.append(ast.Return(value=None))
        self._set_lines(stmts, node.lineno)
        return stmts

    @staticmethod
    def _method_call(target: ast.expr, method: str, *args: ast.expr) -> ast.Call:
        return ast.Call(
            func=ast.Attribute(value=target, attr=method, ctx=ast.Load()),
            args=list(args),
            keywords=[],
        )
