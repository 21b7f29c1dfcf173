"""Basic statement compilation for the talon compiler.

Provides mixin for compiling literal text, commands and raw Python tags.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from collections.abc import Sequence
from typing import TYPE_CHECKING

from talon.compiler.names import rewrite_names
from talon.environment.exceptions import ErrorCode, TemplateSyntaxError

if TYPE_CHECKING:
    from talon.nodes import Code, CodeBlock, Command, Data, Node


class BasicStatementMixin:
    """Mixin for compiling output and raw Python statements.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.

    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        _name: str | None
        _filename: str | None
        _source: str | None

        # From Compiler core
        def _render_attr(self, attr: str) -> ast.Attribute: ...
        def _compile_body(self, body: Sequence[Node]) -> list[ast.stmt]: ...

    def _syntax_error(self, message: str, lineno: int) -> TemplateSyntaxError:
        return TemplateSyntaxError(
            message,
            lineno=lineno,
            name=self._name,
            filename=self._filename,
            source=self._source,
            code=ErrorCode.INVALID_CODE,
        )

    def _parse_python(self, source: str, lineno: int, mode: str = "exec") -> ast.AST:
        """Parse raw template Python, reporting errors at the template line."""
        try:
            return ast.parse(source, mode=mode)
        except SyntaxError as err:
            offset = (err.lineno or 1) - 1
            raise self._syntax_error(f"Invalid Python in template: {err.msg}", lineno + offset) from err

    def _compile_data(self, node: Data) -> list[ast.stmt]:
        """Compile literal text: _literal('text')"""
        if not node.value:
            return []
        call = ast.Call(
            func=ast.Name(id="_literal", ctx=ast.Load()),
            args=[ast.Constant(value=node.value)],
            keywords=[],
        )
        stmt = ast.Expr(value=call)
        self._place(stmt, node.lineno)
        return [stmt]

    def _compile_command(self, node: Command) -> list[ast.stmt]:
        """Compile a registered command: _render.command('name', *args, **kw)

        The argument list is raw Python; its names resolve against ``vars``.
        """
        tree = self._parse_python(f"f({node.arguments})", node.lineno, mode="eval")
        call = tree.body
        if not (isinstance(call, ast.Call) and isinstance(call.func, ast.Name) and call.func.id == "f"):
            raise self._syntax_error(
                f"Invalid arguments for command '{node.name}': {node.arguments}",
                node.lineno,
            )
        call = rewrite_names(tree).body

        command = ast.Call(
            func=self._render_attr("command"),
            args=[ast.Constant(value=node.name), *call.args],
            keywords=call.keywords,
        )
        stmt = ast.Expr(value=command)
        ast.fix_missing_locations(stmt)
        self._place(stmt, node.lineno)
        return [stmt]

    @staticmethod
    def _place(stmt: ast.AST, lineno: int) -> None:
        for child in ast.walk(stmt):
            if "lineno" in child._attributes:
                child.lineno = lineno
                child.end_lineno = lineno

    def _compile_code(self, node: Code) -> list[ast.stmt]:
        """Compile a raw Python tag, splicing its statements in place.

        Statements keep their template line numbers.
        """
        tree = self._parse_python(node.source, node.lineno)
        tree = rewrite_names(tree)
        ast.increment_lineno(tree, node.lineno - 1)
        return list(tree.body)

    def _compile_code_block(self, node: CodeBlock) -> list[ast.stmt]:
        """Compile a raw compound statement spread over several tags.

        The clause headers are parsed together with a ``pass`` placeholder
        under each one (header i on line 2i+1, placeholder on 2i+2), then
        every placeholder is replaced by the compiled body of its clause.
        """
        clauses = node.clauses
        source = "\n".join(f"{clause.header}\n    pass" for clause in clauses)
        try:
            tree = ast.parse(source)
        except SyntaxError as err:
            index = max((err.lineno or 1) - 1, 0) // 2
            raise self._syntax_error(
                f"Invalid Python in template: {err.msg}",
                clauses[min(index, len(clauses) - 1)].lineno,
            ) from err

        tree = rewrite_names(tree)

        placeholders: dict[int, list[ast.stmt]] = {}
        for child in ast.walk(tree):
            for field in ("body", "orelse", "finalbody"):
                stmts = getattr(child, field, None)
                if isinstance(stmts, list):
                    for stmt in stmts:
                        if isinstance(stmt, ast.Pass) and stmt.lineno % 2 == 0:
                            placeholders[id(stmt)] = stmts

        # Header lines map back onto their clause's template line
        pass_nodes: list[tuple[ast.Pass, int]] = []
        for child in ast.walk(tree):
            if "lineno" not in child._attributes:
                continue
            index = (child.lineno - 1) // 2
            if isinstance(child, ast.Pass) and id(child) in placeholders:
                pass_nodes.append((child, index))
            clause_line = clauses[index].lineno
            child.lineno = clause_line
            child.end_lineno = clause_line

        for placeholder, index in pass_nodes:
            body = self._compile_body(clauses[index].body)
            if not body:
                continue
            stmts = placeholders[id(placeholder)]
            position = next(i for i, stmt in enumerate(stmts) if stmt is placeholder)
            stmts[position : position + 1] = body

        return list(tree.body)
