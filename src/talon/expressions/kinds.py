"""Built-in structured expression kinds.

    {% if a eq b %}...{% else %}...{% /if %}
    {% each items as item %}...{% else %}...{% /each %}
    {% with items as item where item.visible %}
        {% none %}...{% /none %}
        {% single %}...{% /single %}
        {% multiple %}{% each %}...{% /each %}{% /multiple %}
        {% all %}...{% /all %}
    {% /with %}
    {% while items as item %}...{% /while %}
    {%= expression %}  {% print macro name(arg=1) %}
    {% macro name(a, b=2) %}...{% /macro %}
    {% break %}  {% break if %}
    {% trim %}  {% trim left %}  {% trim right %}  {% trim blank %}
    {% block "main" %}...{% /block %}
"""

from __future__ import annotations

from collections.abc import MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any

from talon import nodes
from talon._types import Argument, Token, TokenType
from talon.expressions.base import BodyFunction, Expression
from talon.parser.errors import TokenStreamError
from talon.parser.tokens import TagOptions
from talon.template.helpers import collection_keys, is_truthy, resolve_path

# Scope keys that let a bare {% each %} continue an enclosing with
EACH_AS = "_$each_as"
EACH_VAR = "_$each_var"
EACH_KEYS = "_$each_keys"
MACROS = "_$macros"

SUBKEYWORDS: frozenset[str] = frozenset({"else", "none", "single", "multiple", "all"})


@dataclass(frozen=True, slots=True)
class CollectionArguments:
    """Parsed ``paths... as alias where sub.path`` clause."""

    candidates: tuple[tuple[str, ...], ...]
    alias: str | None = None
    where: tuple[str, ...] | None = None


def _parse_collection(options: TagOptions) -> CollectionArguments:
    stream = options.stream
    candidates = stream.get_variable()
    alias = None
    where = None
    if stream.go_to("as"):
        stream.next()
        target = stream.get_variable(1)
        if not target:
            raise TokenStreamError("Expected a name after 'as'", len(stream.content))
        alias = target[0][0]
    if stream.go_to("where"):
        stream.next()
        target = stream.get_variable(1)
        if not target:
            raise TokenStreamError("Expected a path after 'where'", len(stream.content))
        # The first segment names the element alias
        where = target[0][1:]
    return CollectionArguments(tuple(candidates), alias, where)


class If(Expression):
    """Run the body when the expression is truthy, else the else branch."""

    name = "If"
    keyword = "if"
    subkeywords = frozenset({"else"})

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> tuple[Token, ...]:
        tokens = options.stream.get_expression()
        if not options.stream.at_end:
            raise TokenStreamError(f"Unexpected '{options.stream.current.text}'", options.stream.current.pos)
        return tokens

    def execute(self) -> None:
        if is_truthy(self.parse_expression(self.arguments)):
            self.fn(self.vars, self)
        else:
            self.run_branch("else")


class With(Expression):
    """Resolve a collection and expose none/single/multiple/all clauses.

    Clauses run where they appear inside the body. The first candidate
    path holding a non-empty sequence or mapping is used.
    """

    name = "With"
    keyword = "with"
    subkeywords = frozenset({"none", "single", "multiple", "all"})
    inline_branches = True

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.variable: Any = None
        self.keys: list[Any] = []

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> CollectionArguments:
        return _parse_collection(options)

    def resolve_collection(self) -> None:
        args: CollectionArguments = self.arguments
        for path in args.candidates:
            value, keys = collection_keys(resolve_path(self.vars, path))
            if keys:
                self.variable, self.keys = value, keys
                break
        else:
            self.variable, self.keys = None, []

        if args.where is not None and self.keys:
            self.keys = [
                key
                for key in self.keys
                if is_truthy(resolve_path(self.variable[key], args.where))
            ]

    def execute(self) -> None:
        self.resolve_collection()
        self.fn(self.vars, self)

    def prepare_vars(self) -> MutableMapping[str, Any]:
        """Child scope carrying the collection for a nested bare each."""
        return self.vars.new_child(
            {
                EACH_AS: self.arguments.alias,
                EACH_VAR: self.variable,
                EACH_KEYS: self.keys,
            }
        )

    def on_branch_none(self, fn: BodyFunction) -> None:
        if not self.keys:
            fn(self.vars, self)

    def on_branch_all(self, fn: BodyFunction) -> None:
        if self.keys:
            fn(self.prepare_vars(), self)

    def on_branch_multiple(self, fn: BodyFunction) -> None:
        if len(self.keys) > 1:
            fn(self.prepare_vars(), self)

    def on_branch_single(self, fn: BodyFunction) -> None:
        if len(self.keys) == 1:
            scope = self.vars.new_child()
            if self.arguments.alias:
                scope[self.arguments.alias] = self.variable[self.keys[0]]
            fn(scope, self)


class While(With):
    """Like With, but nothing in the body runs for an empty collection."""

    name = "While"
    keyword = "while"

    def execute(self) -> None:
        self.resolve_collection()
        if not self.keys:
            return
        self.fn(self.vars, self)


class Each(Expression):
    """Run the body once per element; the else branch when there are none.

    Without its own arguments it iterates the collection of the enclosing
    with/while.
    """

    name = "Each"
    keyword = "each"
    subkeywords = frozenset({"else"})

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> CollectionArguments | None:
        if not options.content:
            return None
        return _parse_collection(options)

    def _collection(self) -> tuple[Any, list[Any], str | None]:
        args: CollectionArguments | None = self.arguments
        if args is not None and args.candidates:
            for path in args.candidates:
                value, keys = collection_keys(resolve_path(self.vars, path))
                if keys:
                    break
            if args.where is not None:
                keys = [k for k in keys if is_truthy(resolve_path(value[k], args.where))]
            return value, keys, args.alias

        if EACH_VAR in self.vars:
            alias = self.vars.get(EACH_AS)
            if args is not None and args.alias:
                alias = args.alias
            return self.vars[EACH_VAR], list(self.vars[EACH_KEYS]), alias

        parent = self.parent
        if isinstance(parent, With):
            alias = args.alias if args is not None and args.alias else parent.arguments.alias
            return parent.variable, list(parent.keys), alias

        return None, [], None

    def execute(self) -> None:
        variable, keys, alias = self._collection()
        if not keys:
            self.run_branch("else")
            return

        for key in keys:
            scope = self.vars.new_child()
            if alias:
                scope[alias] = variable[key]
            self.fn(scope, self)
            if self.broken:
                break


@dataclass(frozen=True, slots=True)
class PrintArguments:
    expression: tuple[Token, ...] = ()
    macro: str | None = None
    macro_arguments: tuple[Argument, ...] = ()


class Print(Expression):
    """Print an expression's value, or invoke a macro."""

    name = "Print"
    keyword = "print"
    has_body = False
    strip_newline = False

    @classmethod
    def matches(cls, options: TagOptions) -> bool:
        return options.type in ("print", "=")

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> PrintArguments:
        stream = options.stream
        if stream.is_word("macro"):
            stream.next()
            target = stream.get_variable(1)
            if not target:
                raise TokenStreamError("Expected a macro name", len(stream.content))
            arguments: list[Argument] = []
            if stream.is_op("("):
                arguments = stream.get_arguments()
            return PrintArguments(macro=".".join(target[0]), macro_arguments=tuple(arguments))
        tokens = stream.get_expression()
        if not stream.at_end:
            raise TokenStreamError(f"Unexpected '{stream.current.text}'", stream.current.pos)
        return PrintArguments(expression=tokens)

    def execute(self) -> None:
        args: PrintArguments = self.arguments
        if args.macro is not None:
            self.call_macro(args.macro, args.macro_arguments)
            return
        value = self.parse_expression(args.expression)
        if value is not None:
            self.renderer.print(value)

    def call_macro(self, name: str, arguments: Sequence[Argument]) -> None:
        macros = self.vars.get(MACROS) or {}
        macro = macros.get(name)
        if macro is None:
            raise NameError(f"Macro '{name}' is not defined")
        scope = self.vars.new_child()
        positional = iter(macro.parameters)
        for argument in arguments:
            value = self.parse_expression(argument.value)
            if argument.name is not None:
                scope[argument.name] = value
            else:
                parameter = next(positional, None)
                if parameter is not None:
                    scope[parameter[0]] = value
        macro(scope, self)


class MacroDefinition:
    """A named template fragment stored in the scope's macro table."""

    __slots__ = ("definer", "fn", "name", "parameters")

    def __init__(
        self,
        name: str,
        fn: BodyFunction,
        parameters: tuple[tuple[str, tuple[Token, ...]], ...],
        definer: Macro,
    ):
        self.name = name
        self.fn = fn
        self.parameters = parameters
        self.definer = definer

    def __call__(self, scope: MutableMapping[str, Any], caller: Expression) -> None:
        for parameter, default in self.parameters:
            if default and scope.maps[0].get(parameter) is None:
                scope[parameter] = self.definer.parse_expression(default, scope)
        self.fn(scope, caller)

    def __repr__(self) -> str:
        return f"<MacroDefinition {self.name}({', '.join(p for p, _ in self.parameters)})>"


@dataclass(frozen=True, slots=True)
class MacroArguments:
    name: str
    parameters: tuple[tuple[str, tuple[Token, ...]], ...] = ()


class Macro(Expression):
    """Define a macro; the body runs only when a Print invokes it."""

    name = "Macro"
    keyword = "macro"

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> MacroArguments:
        stream = options.stream
        target = stream.get_variable(1)
        if not target or len(target[0]) != 1:
            raise TokenStreamError("Expected a macro name", 0)
        parameters: list[tuple[str, tuple[Token, ...]]] = []
        if stream.is_op("("):
            for argument in stream.get_arguments():
                if argument.name is not None:
                    parameters.append((argument.name, argument.value))
                    continue
                value = argument.value
                if len(value) != 1 or value[0].type is not TokenType.VARIABLE or len(value[0].path) != 1:
                    raise TokenStreamError("Macro parameters must be plain names", 0)
                parameters.append((value[0].path[0], ()))
        return MacroArguments(target[0][0], tuple(parameters))

    def execute(self) -> None:
        args: MacroArguments = self.arguments
        macros = self.vars.get(MACROS)
        if macros is None:
            macros = {}
            self.vars[MACROS] = macros
        macros[args.name] = MacroDefinition(args.name, self.fn, args.parameters, self)


class Break(Expression):
    """Leave the enclosing expression, or all of them up to a named kind.

    Compiled directly to a ``break_out`` call followed by a return.
    """

    name = "Break"
    keyword = "break"
    has_body = False
    strip_newline = False

    @classmethod
    def to_node(
        cls,
        options: TagOptions,
        body: Sequence[nodes.Node] | None = None,
        branches: Sequence[nodes.Branch] = (),
    ) -> nodes.Node:
        target = options.content.split()[0] if options.content else None
        return nodes.Break(options.segment.lineno, options.segment.col_offset, target)


@dataclass(frozen=True, slots=True)
class TrimArguments:
    left: bool = True
    right: bool = True
    blank: bool = False


class Trim(Expression):
    """Whitespace directive on the current block; produces no output."""

    name = "Trim"
    keyword = "trim"
    has_body = False
    strip_newline = False

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> TrimArguments:
        stream = options.stream
        if stream.has_value("blank"):
            return TrimArguments(left=False, right=False, blank=True)
        left = stream.has_value("left")
        right = stream.has_value("right")
        if not left and not right:
            return TrimArguments()
        return TrimArguments(left=left, right=right)

    def execute(self) -> None:
        args: TrimArguments = self.arguments
        block = self.renderer.current_block
        if args.blank:
            block.trim_blank_elements()
        else:
            block.trim(args.left, args.right)


class Block(Expression):
    """Route the body's output into a named block."""

    name = "Block"
    keyword = "block"

    @classmethod
    def parse_arguments(cls, options: TagOptions) -> tuple[Token, ...]:
        tokens = options.stream.get_expression()
        if not tokens:
            raise TokenStreamError("Expected a block name", 0)
        return tokens

    def execute(self) -> None:
        block_name = self.parse_expression(self.arguments)
        self.renderer.start(block_name)
        self.fn(self.vars, self)
        self.renderer.end(block_name)


class Subkeyword(Expression):
    """Bare clause tags: else, none, single, multiple, all.

    They never execute on their own. The compiler turns each one into a
    ``branch()`` registration on the expression that is open around it.
    """

    name = "Subkeyword"
    keyword = ""
    has_body = False
    is_subkeyword = True

    @classmethod
    def matches(cls, options: TagOptions) -> bool:
        return options.type in SUBKEYWORDS

    def execute(self) -> None:
        raise RuntimeError("Subkeyword clauses are registered as branches, not executed")


BUILTIN_EXPRESSIONS: tuple[type[Expression], ...] = (
    If,
    With,
    While,
    Each,
    Print,
    Macro,
    Break,
    Trim,
    Block,
    Subkeyword,
)
