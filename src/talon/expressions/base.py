"""Base class for structured expression kinds.

An expression kind has two faces:

* At compile time its classmethods classify a tag (``matches``), parse
  the tag's arguments (``parse_arguments``) and build the AST node
  (``to_node``).
* At render time one instance is created per executed tag. It sits on
  the renderer's expression stack while its body runs, collects branch
  registrations from subkeyword tags and performs its semantics in
  ``execute``.

Compiled code drives an instance like this::

    _render.start_expression('If', _args[0], vars, _body_3).branch('else', _else_3).close()

Body and branch functions are called as ``fn(variables, expression)``.
"""

from __future__ import annotations

from collections.abc import Callable, MutableMapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from talon import nodes
from talon._types import Token, TokenType
from talon.expressions.operators import BINARY_OPERATORS, UNARY_OPERATORS
from talon.template.helpers import is_truthy, resolve_path

if TYPE_CHECKING:
    from talon.parser.tokens import TagOptions
    from talon.renderer.core import Renderer

BodyFunction = Callable[[MutableMapping[str, Any], "Expression"], None]


@dataclass(frozen=True, slots=True)
class Branch:
    """A registered continuation for a subkeyword clause."""

    name: str
    fn: BodyFunction


class Expression:
    """A structured expression kind and its render-time instance.

    Class attributes (compile time):
        name: Registry name, e.g. "If"
        keyword: Tag word, e.g. "if"
        has_body: Whether the tag needs a closing ``/keyword`` tag
        subkeywords: Clause names this kind accepts
        inline_branches: Branches run where they appear in the body
            (with/while) instead of being chosen after the body (if/each)
        strip_newline: Drop one newline following the opening tag
        is_subkeyword: Clause tag forwarded to the open expression

    Instance attributes (render time):
        renderer: Owning renderer
        arguments: Whatever ``parse_arguments`` produced
        vars: Variable scope the tag executed in
        fn: Body function
        parent: Enclosing expression on the renderer's stack
        branches: Registered branches by name
        broken: Set by ``break_out``; remaining body work is skipped
    """

    name: ClassVar[str] = "Expression"
    keyword: ClassVar[str] = ""
    has_body: ClassVar[bool] = True
    subkeywords: ClassVar[frozenset[str]] = frozenset()
    inline_branches: ClassVar[bool] = False
    is_subkeyword: ClassVar[bool] = False
    strip_newline: ClassVar[bool] = True

    def __init__(
        self,
        renderer: Renderer,
        arguments: Any,
        variables: MutableMapping[str, Any],
        fn: BodyFunction | None = None,
    ):
        self.renderer = renderer
        self.arguments = arguments
        self.vars = variables
        self.fn = fn
        self.parent: Expression | None = renderer.current_expression
        self.branches: dict[str, Branch] = {}
        self.broken = False

    def __repr__(self) -> str:
        return f"<{self.name} expression broken={self.broken}>"

    # ------------------------------------------------------------------
    # Compile time
    # ------------------------------------------------------------------

    @classmethod
    def matches(cls, options: TagOptions) -> bool:
        """Whether this kind handles the given tag."""
        return options.type == cls.keyword

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> Any:
        return None

    @classmethod
    def to_node(
        cls,
        options: TagOptions,
        body: Sequence[nodes.Node] | None = None,
        branches: Sequence[nodes.Branch] = (),
    ) -> nodes.Node:
        segment = options.segment
        return nodes.Expression(
            lineno=segment.lineno,
            col_offset=segment.col_offset,
            kind=cls.name,
            arguments=cls.parse_arguments(options),
            body=tuple(body) if body is not None else None,
            branches=tuple(branches),
        )

    # ------------------------------------------------------------------
    # Render time
    # ------------------------------------------------------------------

    def branch(self, name: str, fn: BodyFunction) -> Expression:
        """Register a subkeyword continuation.

        Kinds may react immediately through an ``on_branch_<name>`` method.
        Registrations after a break are ignored.
        """
        if self.broken:
            return self
        self.branches[name] = Branch(name, fn)
        handler = getattr(self, f"on_branch_{name}", None)
        if handler is not None:
            handler(fn)
        return self

    def break_out(self, name: str | None = None) -> None:
        """Stop this expression, or every expression up to the one named ``name``."""
        expression: Expression | None = self
        while expression is not None:
            expression.broken = True
            if name is None or expression.keyword == name:
                return
            expression = expression.parent

    def close(self) -> Expression:
        """Execute, then leave the renderer's expression stack."""
        try:
            if not self.broken:
                self.execute()
        finally:
            self.renderer.pop_expression(self)
        return self

    def execute(self) -> None:
        if self.fn is not None:
            self.fn(self.vars, self)

    def run_branch(self, name: str, variables: MutableMapping[str, Any] | None = None) -> bool:
        """Run a registered branch; False when there is none."""
        branch = self.branches.get(name)
        if branch is None:
            return False
        branch.fn(self.vars if variables is None else variables, self)
        return True

    # ------------------------------------------------------------------
    # Expression evaluation
    # ------------------------------------------------------------------

    def parse_expression(
        self,
        tokens: Sequence[Token],
        variables: MutableMapping[str, Any] | None = None,
    ) -> Any:
        """Evaluate a flat token expression strictly left to right.

        ``or`` returns the running result as soon as it is truthy, ``and``
        as soon as it is falsy. Either one then starts a fresh operand.
        """
        if variables is None:
            variables = self.vars

        result: Any = None
        have_a = False
        a: Any = None
        operator: Token | None = None

        for token in tokens:
            if token.type is TokenType.KEYWORD and token.value == "or":
                if is_truthy(result):
                    return result
                have_a = False
                continue

            if token.type is TokenType.KEYWORD and token.value == "and":
                if not is_truthy(result):
                    return result
                have_a = False
                continue

            if not have_a:
                have_a = True
                operator = None
                a = self._apply_invert(token, self.get_token_value(token, variables))
                result = a
                continue

            if operator is None:
                if token.type is not TokenType.KEYWORD:
                    raise ValueError(f"Unexpected {self._describe(token)}: expected an operator")
                operator = token
                if operator.value not in UNARY_OPERATORS:
                    continue
                result = UNARY_OPERATORS[operator.value](a)
            else:
                b = self._apply_invert(token, self.get_token_value(token, variables))
                fn = BINARY_OPERATORS.get(operator.value)
                if fn is None:
                    raise ValueError(f"Unknown operator '{operator.value}'")
                result = fn(a, b)

            if operator.invert:
                result = not is_truthy(result)

            # The result becomes the next left operand
            a = result
            operator = None

        return result

    @staticmethod
    def _apply_invert(token: Token, value: Any) -> Any:
        if token.invert:
            return not is_truthy(value)
        if token.invert is False:
            return is_truthy(value)
        return value

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type is TokenType.VARIABLE:
            return f"variable `{'.'.join(token.path)}`"
        return f"{token.type.value} {token.value!r}"

    def get_token_value(self, token: Token, variables: MutableMapping[str, Any]) -> Any:
        if token.type is TokenType.LITERAL:
            return token.value
        if token.type is TokenType.VARIABLE:
            result = None
            for path in token.paths:
                result = resolve_path(variables, path)
                if is_truthy(result):
                    break
            return result
        if token.type is TokenType.CALL:
            return self.call_path_with_args(token.path, token.arguments, variables)
        if token.type is TokenType.GROUP:
            return self.parse_expression(token.tokens, variables)
        raise ValueError(f"Unexpected {self._describe(token)}")

    def get_token_values(
        self,
        groups: Sequence[Sequence[Token]],
        variables: MutableMapping[str, Any],
    ) -> list[Any]:
        return [self.parse_expression(group, variables) for group in groups]

    def call_path_with_args(
        self,
        path: Sequence[str],
        arguments: Sequence[Sequence[Token]],
        variables: MutableMapping[str, Any],
    ) -> Any:
        """Call a function found on variables, helpers, the renderer or builtins."""
        fn = self.renderer.resolve_callable(path, variables)
        if fn is None:
            raise NameError(f"Unable to call path \"{'.'.join(path)}\"")
        return fn(*self.get_token_values(arguments, variables))
