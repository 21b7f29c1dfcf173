"""Parser: dissected segments to a talon AST.

Every tag is classified in this order:

1. Closing tags (``{% /if %}``), subkeywords (``{% else %}``) and raw
   block terminators (``<% end %>``, ``<% else: %>``) end the body that
   is currently being parsed.
2. In the expression syntax, a registered expression kind whose
   ``matches()`` accepts the tag.
3. A registered command (first word of the tag).
4. Anything else is raw Python, inserted verbatim. A raw statement
   ending in ``:`` opens a compound block closed by ``<% end %>``.
"""

from __future__ import annotations

from collections.abc import Container, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from talon import nodes
from talon._types import Segment, SegmentType
from talon.environment.exceptions import ErrorCode
from talon.lexer import strip_one_newline
from talon.parser.errors import ParseError, TokenStreamError
from talon.parser.tokens import TagOptions

if TYPE_CHECKING:
    from talon.expressions.base import Expression
    from talon.expressions.registry import ExpressionRegistry

# Raw compound statement openers and their continuation clauses
BLOCK_OPENERS: frozenset[str] = frozenset({"if", "for", "while", "with", "try"})
BLOCK_CONTINUATIONS: dict[str, frozenset[str]] = {
    "else": frozenset({"if", "for", "while", "try"}),
    "elif": frozenset({"if"}),
    "except": frozenset({"try"}),
    "finally": frozenset({"try"}),
}
BLOCK_END = "end"


@dataclass(frozen=True, slots=True)
class _Stop:
    """Why a body stopped: a tag that belongs to an enclosing construct."""

    kind: str  # "close", "subkeyword", "end" or "continuation"
    options: TagOptions

    @property
    def segment(self) -> Segment:
        return self.options.segment


def _first_word(text: str) -> str:
    word = text.split(None, 1)[0] if text.strip() else ""
    # "elif(x):" and "else:" carry punctuation
    for i, char in enumerate(word):
        if not (char.isalnum() or char == "_"):
            return word[:i]
    return word


class Parser:
    """Recursive-descent parser over dissected segments.

    Example:
        >>> from talon.lexer import dissect
        >>> from talon.expressions import ExpressionRegistry
        >>> parser = Parser(dissect("{% if x %}X{% /if %}"), ExpressionRegistry(), {"="})
        >>> parser.parse().body[0].kind
        'If'
    """

    __slots__ = (
        "_commands",
        "_expressions",
        "_name",
        "_open",
        "_pos",
        "_segments",
        "_source",
        "_strip_newline",
    )

    def __init__(
        self,
        segments: Sequence[Segment],
        expressions: ExpressionRegistry,
        commands: Container[str] = (),
        name: str | None = None,
        source: str | None = None,
    ):
        self._segments = segments
        self._expressions = expressions
        self._commands = commands
        self._name = name
        self._source = source
        self._pos = 0
        self._open: list[str] = []
        self._strip_newline = False

    def parse(self) -> nodes.Template:
        body, stop = self._parse_body()
        if stop is not None:
            raise self._unexpected(stop)
        return nodes.Template(lineno=1, col_offset=0, body=tuple(body))

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _error(
        self,
        message: str,
        segment: Segment,
        *,
        code: ErrorCode | None = None,
        suggestion: str | None = None,
    ) -> ParseError:
        return ParseError(
            message,
            segment,
            source=self._source,
            name=self._name,
            suggestion=suggestion,
            code=code,
        )

    def _unexpected(self, stop: _Stop) -> ParseError:
        options = stop.options
        if stop.kind == "close":
            tag = f"/{options.type}"
            where = f"inside '{self._open[-1]}'" if self._open else "at top level"
            return self._error(
                f"Unexpected closing tag '{tag}' {where}",
                stop.segment,
                code=ErrorCode.UNKNOWN_CLOSE,
            )
        if stop.kind == "subkeyword":
            where = f"'{self._open[-1]}'" if self._open else "any open expression"
            return self._error(
                f"'{options.type}' is not allowed outside {where}",
                stop.segment,
                suggestion="Clauses like else/none/single/multiple/all must sit directly inside an expression that accepts them",
            )
        return self._error(
            f"Unexpected '{stop.segment.value}' without a matching raw block",
            stop.segment,
            suggestion="Raw blocks start with a statement ending in ':' such as <% for x in items: %>",
        )

    def _from_stream_error(self, err: TokenStreamError, segment: Segment) -> ParseError:
        return self._error(
            f"Invalid expression in '{segment.value}': {err.message}",
            segment,
            code=ErrorCode.INVALID_EXPRESSION,
        )

    # ------------------------------------------------------------------
    # Bodies
    # ------------------------------------------------------------------

    def _parse_body(self) -> tuple[list[nodes.Node], _Stop | None]:
        """Parse nodes until EOF or a tag owned by an enclosing construct."""
        body: list[nodes.Node] = []
        while self._pos < len(self._segments):
            segment = self._segments[self._pos]
            self._pos += 1

            if segment.type is SegmentType.LITERAL:
                text = segment.value
                if self._strip_newline:
                    text = strip_one_newline(text)
                self._strip_newline = False
                if text:
                    body.append(nodes.Data(segment.lineno, segment.col_offset, text))
                continue

            self._strip_newline = False
            options = TagOptions.from_segment(segment, self._open[-1] if self._open else None)
            stop = self._classify_stop(options)
            if stop is not None:
                return body, stop

            if segment.syntax == "expression":
                node = self._parse_expression_tag(options)
            else:
                node = self._parse_code_tag(options)
            body.append(node)
        return body, None

    def _classify_stop(self, options: TagOptions) -> _Stop | None:
        segment = options.segment
        if segment.syntax == "expression":
            if options.close:
                return _Stop("close", options)
            kind = self._expressions.match(options)
            if kind is not None and kind.is_subkeyword:
                return _Stop("subkeyword", options)

        if segment.value == BLOCK_END:
            return _Stop("end", options)
        if segment.value.endswith(":") and _first_word(segment.value) in BLOCK_CONTINUATIONS:
            return _Stop("continuation", options)
        return None

    # ------------------------------------------------------------------
    # Structured expressions
    # ------------------------------------------------------------------

    def _parse_expression_tag(self, options: TagOptions) -> nodes.Node:
        kind = self._expressions.match(options)
        if kind is None:
            return self._parse_code_tag(options)

        segment = options.segment
        if not kind.has_body:
            node = self._build(kind, options)
            self._strip_newline = kind.strip_newline and not segment.trim_right
            return node

        self._strip_newline = kind.strip_newline and not segment.trim_right
        self._open.append(kind.keyword)
        try:
            body, branches = self._parse_expression_body(kind, options)
        finally:
            self._open.pop()
        return self._build(kind, options, body, branches)

    def _build(
        self,
        kind: type[Expression],
        options: TagOptions,
        body: Sequence[nodes.Node] | None = None,
        branches: Sequence[nodes.Branch] = (),
    ) -> nodes.Node:
        try:
            return kind.to_node(options, body, branches)
        except TokenStreamError as err:
            raise self._from_stream_error(err, options.segment) from err

    def _parse_expression_body(
        self,
        kind: type[Expression],
        options: TagOptions,
    ) -> tuple[list[nodes.Node], list[nodes.Branch]]:
        body, stop = self._parse_body()
        branches: list[nodes.Branch] = []

        while True:
            if stop is None:
                raise self._error(
                    f"Unclosed '{kind.keyword}' tag",
                    options.segment,
                    code=ErrorCode.UNCLOSED_BLOCK,
                    suggestion=f"Add {{% /{kind.keyword} %}} to close it",
                )
            if stop.kind == "close" and stop.options.type == kind.keyword:
                self._strip_newline = kind.strip_newline and not stop.segment.trim_right
                return body, branches
            if stop.kind != "subkeyword":
                raise self._unexpected(stop)

            name = stop.options.type
            if name not in kind.subkeywords:
                raise self._error(
                    f"'{name}' is not allowed inside '{kind.keyword}'",
                    stop.segment,
                    suggestion=f"'{kind.keyword}' accepts: {', '.join(sorted(kind.subkeywords)) or 'no clauses'}",
                )
            if any(b.name == name for b in branches):
                raise self._error(f"Duplicate '{name}' clause in '{kind.keyword}'", stop.segment)

            branch_segment = stop.segment
            self._strip_newline = not branch_segment.trim_right
            branch_body, stop = self._parse_body()
            branch = nodes.Branch(
                branch_segment.lineno,
                branch_segment.col_offset,
                name,
                tuple(branch_body),
            )

            if kind.inline_branches:
                body.append(branch)
                # An explicitly closed clause hands control back to the body
                if stop is not None and stop.kind == "close" and stop.options.type == name:
                    self._strip_newline = not stop.segment.trim_right
                    more, stop = self._parse_body()
                    body.extend(more)
            else:
                branches.append(branch)

    # ------------------------------------------------------------------
    # Commands and raw code
    # ------------------------------------------------------------------

    def _parse_code_tag(self, options: TagOptions) -> nodes.Node:
        segment = options.segment
        if options.type in self._commands:
            return nodes.Command(segment.lineno, segment.col_offset, options.type, options.content)

        text = segment.value
        if text.endswith(":") and _first_word(text) in BLOCK_OPENERS:
            return self._parse_code_block(options)
        return nodes.Code(segment.lineno, segment.col_offset, text)

    def _parse_code_block(self, options: TagOptions) -> nodes.CodeBlock:
        opener = _first_word(options.segment.value)
        clauses: list[nodes.CodeClause] = []
        header = options.segment
        self._open.append(opener)
        try:
            while True:
                body, stop = self._parse_body()
                clauses.append(
                    nodes.CodeClause(header.lineno, header.col_offset, header.value, tuple(body))
                )
                if stop is None:
                    raise self._error(
                        f"Unclosed raw block '{options.segment.value}'",
                        options.segment,
                        code=ErrorCode.UNCLOSED_BLOCK,
                        suggestion="Close raw blocks with <% end %>",
                    )
                if stop.kind == "end":
                    break
                if stop.kind == "continuation":
                    word = _first_word(stop.segment.value)
                    if opener not in BLOCK_CONTINUATIONS[word]:
                        raise self._error(
                            f"'{word}' cannot continue a raw '{opener}' block",
                            stop.segment,
                        )
                    header = stop.segment
                    continue
                raise self._unexpected(stop)
        finally:
            self._open.pop()
        return nodes.CodeBlock(options.segment.lineno, options.segment.col_offset, tuple(clauses))
