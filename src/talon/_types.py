"""Shared value types for the talon dissector and token stream.

Segments are produced by the dissector (one per literal run or tag),
tokens by the token stream that reads a single tag's content. Both are
frozen so compiled templates can hold on to them safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SegmentType(Enum):
    """Kind of a dissected source segment."""

    LITERAL = "literal"
    TAG = "tag"


@dataclass(frozen=True, slots=True)
class TagSyntax:
    """One open/close delimiter pair.

    Attributes:
        name: "code" or "expression"
        open: Opening delimiter, e.g. ``<%``
        close: Closing delimiter, e.g. ``%>``
    """

    name: str
    open: str
    close: str


@dataclass(frozen=True, slots=True)
class Segment:
    """A literal run or the inner content of one tag.

    Attributes:
        type: LITERAL or TAG
        value: Literal text, or the tag content without delimiters
        lineno: 1-based line the segment starts on
        col_offset: 0-based column of the segment start
        syntax: Name of the delimiter pair for TAG segments
        trim_right: True when the tag ended with ``-`` before its close delimiter
    """

    type: SegmentType
    value: str
    lineno: int
    col_offset: int = 0
    syntax: str | None = None
    trim_right: bool = False


class TokenType(Enum):
    """Kinds of tokens inside a tag."""

    LITERAL = "literal"
    VARIABLE = "variable"
    CALL = "call"
    KEYWORD = "keyword"
    GROUP = "group"


@dataclass(frozen=True, slots=True)
class Token:
    """Unit of parsed tag content.

    Attributes:
        type: Token kind
        value: Literal value, or the keyword name for KEYWORD tokens
        paths: Candidate variable paths for VARIABLE and CALL tokens.
            More than one path means "first truthy alternative".
        arguments: Argument expressions of a CALL token
        tokens: Nested expression of a GROUP token
        invert: Negate the value (or operator result) of this token. False
            (from a double negation) coerces the value to a boolean.
        col_offset: Position inside the tag content
    """

    type: TokenType
    value: Any = None
    paths: tuple[tuple[str, ...], ...] = ()
    arguments: tuple[tuple[Token, ...], ...] = ()
    tokens: tuple[Token, ...] = ()
    invert: bool | None = None
    col_offset: int = 0

    @property
    def path(self) -> tuple[str, ...]:
        """The primary variable path."""
        return self.paths[0] if self.paths else ()

    @property
    def is_keyword(self) -> bool:
        return self.type is TokenType.KEYWORD


@dataclass(frozen=True, slots=True)
class Argument:
    """One entry of a parenthesized argument list.

    ``name`` is None for positional arguments. ``value`` is empty when a
    parameter list declares a name without a default.
    """

    name: str | None
    value: tuple[Token, ...] = field(default=())
