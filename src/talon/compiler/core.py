"""talon Compiler core: template AST to a Python code object.

The compiler generates an ``ast.Module`` (never source strings) holding a
single ``render(_render, vars)`` function:

    ```python
    def render(_render, vars):
        _rc = _get_render_ctx()
        _literal = _render.print_literal
        _lookup = _render.lookup
        _rc.line = 1
        _literal('<ul>\\n')
        _rc.line = 2
        def _body_1(vars, _expression):
            _rc.line = 3
            _render.start_expression('Print', _args[1], vars).close()
        _render.start_expression('Each', _args[0], vars, _body_1).close()
    ```

Design Principles:
1. **AST-to-AST**: raw Python tags are parsed with ``ast`` and spliced in
2. **Explicit scope**: every template variable lives in ``vars`` (a
   ChainMap); free names in raw code are rewritten onto it
3. **Line tracking**: ``_rc.line = N`` precedes every tag, and spliced
   statements keep template line numbers so tracebacks point at the
   template
4. **Body functions**: expression bodies and branches compile to nested
   ``def``s called by the expression instance at render time

Parsed expression arguments are not re-encoded as Python literals; they
are collected into the ``_args`` tuple stored in the template namespace.
"""

from __future__ import annotations

import ast
import itertools
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from talon.compiler.statements import StatementCompilationMixin

if TYPE_CHECKING:
    import types

    from talon.nodes import Node
    from talon.nodes import Template as TemplateNode


class CompiledTemplate:
    """Code object plus the argument table it indexes into."""

    __slots__ = ("arguments", "code")

    def __init__(self, code: types.CodeType, arguments: tuple[Any, ...]):
        self.code = code
        self.arguments = arguments


class Compiler(StatementCompilationMixin):
    """Compile a talon Template AST to a code object.

    Attributes:
        _name: Template name for error messages
        _filename: Source file path passed to ``compile()``
        _source: Template source, for syntax error snippets
        _arguments: Collected expression arguments (becomes ``_args``)
        _counter: Unique suffixes for generated function names
        _depth: Nesting depth of body functions (0 inside ``render``)

    Example:
            >>> from talon import Environment
            >>> env = Environment()
            >>> template = env.from_string("Hello, <%= name %>!")
            >>> template.render(name="World")
            'Hello, World!'

    """

    __slots__ = (
        "_arguments",
        "_counter",
        "_depth",
        "_filename",
        "_name",
        "_node_dispatch",
        "_source",
    )

    def __init__(self) -> None:
        self._name: str | None = None
        self._filename: str | None = None
        self._source: str | None = None
        self._arguments: list[Any] = []
        self._counter = itertools.count(1)
        self._depth = 0

    def compile(
        self,
        node: TemplateNode,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
    ) -> CompiledTemplate:
        """Compile template AST to a code object and argument table."""
        self._name = name
        self._filename = filename
        self._source = source
        self._arguments = []
        self._counter = itertools.count(1)
        self._depth = 0

        module = ast.Module(body=[self._make_render_function(node)], type_ignores=[])
        ast.fix_missing_locations(module)
        self._fix_line_ranges(module)

        try:
            code = compile(module, filename or name or "<template>", "exec")
        except SyntaxError as err:
            raise self._syntax_error(
                f"Invalid Python in template: {err.msg}",
                err.lineno or 1,
            ) from err
        except ValueError as err:
            raise self._syntax_error(f"Invalid template code: {err}", 1) from err
        return CompiledTemplate(code, tuple(self._arguments))

    def _make_render_function(self, node: TemplateNode) -> ast.FunctionDef:
        """Generate ``def render(_render, vars)``."""
        body: list[ast.stmt] = [
            # _rc = _get_render_ctx()
            ast.Assign(
                targets=[ast.Name(id="_rc", ctx=ast.Store())],
                value=ast.Call(func=ast.Name(id="_get_render_ctx", ctx=ast.Load()), args=[], keywords=[]),
            ),
            # _literal = _render.print_literal
            ast.Assign(
                targets=[ast.Name(id="_literal", ctx=ast.Store())],
                value=self._render_attr("print_literal"),
            ),
            # _lookup = _render.lookup
            ast.Assign(
                targets=[ast.Name(id="_lookup", ctx=ast.Store())],
                value=self._render_attr("lookup"),
            ),
        ]
        body.extend(self._compile_body(node.body))
        return self._make_function("render", ["_render", "vars"], body, lineno=1)

    # ------------------------------------------------------------------
    # Shared builders
    # ------------------------------------------------------------------

    @staticmethod
    def _render_attr(attr: str) -> ast.Attribute:
        return ast.Attribute(value=ast.Name(id="_render", ctx=ast.Load()), attr=attr, ctx=ast.Load())

    @staticmethod
    def _make_function(
        name: str,
        params: Sequence[str],
        body: list[ast.stmt],
        lineno: int,
    ) -> ast.FunctionDef:
        func = ast.FunctionDef(
            name=name,
            args=ast.arguments(
                posonlyargs=[],
                args=[ast.arg(arg=p) for p in params],
                vararg=None,
                kwonlyargs=[],
                kw_defaults=[],
                kwarg=None,
                defaults=[],
            ),
            body=body or [ast.Pass()],
            decorator_list=[],
            returns=None,
            type_params=[],
        )
        func.lineno = lineno
        func.col_offset = 0
        func.end_lineno = lineno
        func.end_col_offset = 0
        return func

    @staticmethod
    def _fix_line_ranges(module: ast.Module) -> None:
        """Widen end positions so no node ends before it starts.

        Generated nodes carry template line numbers out of source order,
        and fix_missing_locations copies end positions from the parent.
        """
        for child in ast.walk(module):
            if "lineno" not in child._attributes:
                continue
            end_lineno = getattr(child, "end_lineno", None)
            if end_lineno is None or end_lineno < child.lineno:
                child.end_lineno = child.lineno
                child.end_col_offset = child.col_offset
            elif end_lineno == child.lineno and (child.end_col_offset or 0) < child.col_offset:
                child.end_col_offset = child.col_offset

    def _next_name(self, prefix: str) -> str:
        return f"_{prefix}_{next(self._counter)}"

    def _add_argument(self, value: Any) -> ast.expr:
        """Store a parsed value in ``_args`` and return ``_args[i]``."""
        self._arguments.append(value)
        return ast.Subscript(
            value=ast.Name(id="_args", ctx=ast.Load()),
            slice=ast.Constant(value=len(self._arguments) - 1),
            ctx=ast.Load(),
        )

    def _make_line_marker(self, lineno: int) -> ast.stmt:
        """Generate ``_rc.line = lineno`` for error tracking."""
        return ast.Assign(
            targets=[
                ast.Attribute(
                    value=ast.Name(id="_rc", ctx=ast.Load()),
                    attr="line",
                    ctx=ast.Store(),
                )
            ],
            value=ast.Constant(value=lineno),
        )

    @staticmethod
    def _set_lines(stmts: Sequence[ast.AST], lineno: int) -> None:
        """Pin generated statements to a template line."""
        for stmt in stmts:
            for child in ast.walk(stmt):
                if "lineno" in child._attributes:
                    child.lineno = lineno
                    child.end_lineno = lineno
                    child.col_offset = 0
                    child.end_col_offset = 0

    def _compile_body(self, body: Sequence[Node]) -> list[ast.stmt]:
        stmts: list[ast.stmt] = []
        for child in body:
            stmts.extend(self._compile_node(child))
        return stmts

    def _compile_node(self, node: Node) -> list[ast.stmt]:
        """Compile one node; tags get a line marker first.

        Complexity: O(1) dispatch on the node class name.
        """
        node_type = type(node).__name__
        handler = self._get_node_dispatch().get(node_type)
        if handler is None:
            raise TypeError(f"No compiler for node type {node_type}")

        stmts: list[ast.stmt] = []
        if node_type != "Data":
            marker = self._make_line_marker(node.lineno)
            self._set_lines([marker], node.lineno)
            stmts.append(marker)
        stmts.extend(handler(node))
        return stmts

    def _get_node_dispatch(self) -> dict[str, Callable[[Any], list[ast.stmt]]]:
        """Node type dispatch table (built on first call)."""
        if not hasattr(self, "_node_dispatch"):
            self._node_dispatch = {
                "Data": self._compile_data,
                "Command": self._compile_command,
                "Code": self._compile_code,
                "CodeBlock": self._compile_code_block,
                "Expression": self._compile_expression,
                "Branch": self._compile_branch,
                "Break": self._compile_break,
            }
        return self._node_dispatch
