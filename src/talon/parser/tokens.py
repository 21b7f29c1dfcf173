"""Token stream over the content of a single tag.

The stream works on "lexemes" (strings, numbers, dotted names and
punctuation) and builds Token values on demand. Operators are read in a
single left-to-right pass; there is no precedence. ``not`` is folded into
the inverted flag of the token that follows it, so ``not not x`` cancels.

    >>> stream = TokenStream('items as item where item.visible')
    >>> stream.get_variable()
    [('items',)]
    >>> stream.go_to('as')
    True
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, replace
from typing import NamedTuple

from talon._types import Argument, Segment, Token, TokenType
from talon.parser.errors import TokenStreamError

_LEXEME_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<name>[A-Za-z_$][\w$]*(?:\.[\w$]+)*)
  | (?P<op>==|!=|>=|<=|[-+*/<>(),=|])
    """,
    re.VERBOSE,
)

# Symbol spellings of the keyword operators
SYMBOL_OPERATORS: dict[str, str] = {
    "==": "eq",
    ">": "gt",
    ">=": "ge",
    "<": "lt",
    "<=": "le",
    "+": "plus",
    "-": "minus",
    "*": "multiply",
    "/": "divide",
}

WORD_OPERATORS: frozenset[str] = frozenset(
    {
        "eq", "gt", "ge", "lt", "le",
        "plus", "minus", "multiply", "divide",
        "empty", "emptyhtml",
    }
)

UNARY_OPERATORS: frozenset[str] = frozenset({"empty", "emptyhtml"})

LOGICAL_OPERATORS: frozenset[str] = frozenset({"and", "or"})

LITERAL_WORDS: dict[str, object] = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "none": None,
    "None": None,
    "undefined": None,
}

# Bare words that end a variable list
CLAUSE_WORDS: frozenset[str] = frozenset({"as", "where", "not", "starts"}) | WORD_OPERATORS | LOGICAL_OPERATORS


def _number(text: str) -> int | float:
    return float(text) if "." in text else int(text)


class Lexeme(NamedTuple):
    kind: str
    text: str
    pos: int

    @property
    def end(self) -> int:
        return self.pos + len(self.text)


def scan(content: str) -> list[Lexeme]:
    """Split tag content into lexemes, dropping whitespace."""
    lexemes: list[Lexeme] = []
    pos = 0
    while pos < len(content):
        match = _LEXEME_RE.match(content, pos)
        if match is None:
            raise TokenStreamError(f"Unexpected character {content[pos]!r}", pos)
        kind = match.lastgroup
        if kind != "ws":
            lexemes.append(Lexeme(kind, match.group(), pos))
        pos = match.end()
    return lexemes


class TokenStream:
    """Cursor over the lexemes of one tag.

    Attributes:
        content: The raw tag content (without the leading type word)
        index: Position of the current lexeme
    """

    __slots__ = ("_lexemes", "content", "index")

    def __init__(self, content: str):
        self.content = content
        self._lexemes = scan(content)
        self.index = 0

    def __len__(self) -> int:
        return len(self._lexemes)

    @property
    def current(self) -> Lexeme | None:
        if self.index < len(self._lexemes):
            return self._lexemes[self.index]
        return None

    @property
    def at_end(self) -> bool:
        return self.index >= len(self._lexemes)

    def peek(self, offset: int = 1) -> Lexeme | None:
        idx = self.index + offset
        if 0 <= idx < len(self._lexemes):
            return self._lexemes[idx]
        return None

    def next(self) -> Lexeme | None:
        """Advance one lexeme and return the new current one."""
        if self.index < len(self._lexemes):
            self.index += 1
        return self.current

    def go_to(self, word: str) -> bool:
        """Move the cursor to the next bare ``word``; False if there is none."""
        for idx in range(self.index, len(self._lexemes)):
            lexeme = self._lexemes[idx]
            if lexeme.kind == "name" and lexeme.text == word:
                self.index = idx
                return True
        return False

    def has_value(self, word: str) -> bool:
        """Whether the bare word appears anywhere in the tag."""
        return any(lx.kind == "name" and lx.text == word for lx in self._lexemes)

    def is_word(self, word: str) -> bool:
        current = self.current
        return current is not None and current.kind == "name" and current.text == word

    def is_op(self, op: str) -> bool:
        current = self.current
        return current is not None and current.kind == "op" and current.text == op

    def expect_op(self, op: str) -> None:
        if not self.is_op(op):
            found = self.current.text if self.current else "end of tag"
            raise TokenStreamError(f"Expected '{op}', found '{found}'", self._offset())
        self.next()

    def _offset(self) -> int:
        current = self.current
        return current.pos if current else len(self.content)

    # ------------------------------------------------------------------
    # Variables and arguments
    # ------------------------------------------------------------------

    def get_variable(self, amount: int | None = None) -> list[tuple[str, ...]]:
        """Read the next ``amount`` dotted paths (all consecutive ones if None).

        Commas between paths are skipped. Reading stops at clause words
        like ``as`` and ``where``.
        """
        paths: list[tuple[str, ...]] = []
        while self.current is not None and (amount is None or len(paths) < amount):
            lexeme = self.current
            if lexeme.kind == "op" and lexeme.text == ",":
                self.next()
                continue
            if lexeme.kind != "name" or lexeme.text in CLAUSE_WORDS:
                break
            paths.append(tuple(lexeme.text.split(".")))
            self.next()
        return paths

    def get_arguments(self) -> list[Argument]:
        """Read ``(a, b=expr, ...)``; the cursor must be on the ``(``."""
        self.expect_op("(")
        arguments: list[Argument] = []
        while not self.is_op(")"):
            if self.at_end:
                raise TokenStreamError("Unclosed argument list", len(self.content))
            lexeme = self.current
            following = self.peek()
            if (
                lexeme.kind == "name"
                and following is not None
                and following.kind == "op"
                and following.text == "="
            ):
                self.next()
                self.next()
                arguments.append(Argument(lexeme.text, self.get_expression()))
            else:
                arguments.append(Argument(None, self.get_expression()))
            if self.is_op(","):
                self.next()
            elif not self.is_op(")"):
                raise TokenStreamError("Expected ',' or ')' in argument list", self._offset())
        self.next()
        return arguments

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def get_expression(self, stop_words: frozenset[str] | tuple[str, ...] = ()) -> tuple[Token, ...]:
        """Read a flat operator expression.

        Stops (without consuming) at ``)``, ``,``, the end of the tag or
        any bare word in ``stop_words``.
        """
        tokens: list[Token] = []
        invert: bool | None = None
        while (lexeme := self.current) is not None:
            if lexeme.kind == "op" and lexeme.text in (")", ","):
                break
            if lexeme.kind == "name" and lexeme.text in stop_words:
                break
            if lexeme.kind == "name" and lexeme.text == "not":
                invert = not invert
                self.next()
                continue
            token = self._read_token(operand=not tokens or tokens[-1].type is TokenType.KEYWORD)
            if invert is not None:
                token = replace(token, invert=bool(token.invert) != invert)
                invert = None
            tokens.append(token)
        if invert is not None:
            raise TokenStreamError("'not' must be followed by a value or operator", self._offset())
        return tuple(tokens)

    def _read_token(self, operand: bool = True) -> Token:
        lexeme = self.current
        assert lexeme is not None
        kind, text, pos = lexeme

        if kind == "string":
            try:
                value = ast.literal_eval(text)
            except (SyntaxError, ValueError) as err:
                raise TokenStreamError(f"Invalid string literal {text}", pos) from err
            self.next()
            return Token(TokenType.LITERAL, value, col_offset=pos)

        if kind == "number":
            self.next()
            return Token(TokenType.LITERAL, _number(text), col_offset=pos)

        # -1 where a value is expected is a negative literal, not minus
        following = self.peek()
        if (
            operand
            and kind == "op"
            and text == "-"
            and following is not None
            and following.kind == "number"
            and following.pos == lexeme.end
        ):
            self.next()
            self.next()
            return Token(TokenType.LITERAL, -_number(following.text), col_offset=pos)

        if kind == "op":
            if text == "(":
                self.next()
                inner = self.get_expression()
                self.expect_op(")")
                return Token(TokenType.GROUP, tokens=inner, col_offset=pos)
            if text == "!=":
                self.next()
                return Token(TokenType.KEYWORD, "eq", invert=True, col_offset=pos)
            if text in SYMBOL_OPERATORS:
                self.next()
                return Token(TokenType.KEYWORD, SYMBOL_OPERATORS[text], col_offset=pos)
            raise TokenStreamError(f"Unexpected '{text}'", pos)

        # Bare names
        if text in LITERAL_WORDS:
            self.next()
            return Token(TokenType.LITERAL, LITERAL_WORDS[text], col_offset=pos)
        if text in LOGICAL_OPERATORS or text in WORD_OPERATORS:
            self.next()
            return Token(TokenType.KEYWORD, text, col_offset=pos)
        if text == "starts":
            if not (self.peek() and self.peek().text == "with"):
                raise TokenStreamError("Expected 'with' after 'starts'", pos)
            self.next()
            self.next()
            return Token(TokenType.KEYWORD, "starts with", col_offset=pos)

        return self._read_variable()

    def _read_variable(self) -> Token:
        lexeme = self.current
        paths = [tuple(lexeme.text.split("."))]
        self.next()

        # a|b|c: first truthy alternative
        while self.is_op("|") and self.peek() is not None and self.peek().kind == "name":
            self.next()
            paths.append(tuple(self.current.text.split(".")))
            self.next()

        following = self.current
        if (
            len(paths) == 1
            and following is not None
            and following.kind == "op"
            and following.text == "("
            and following.pos == lexeme.end
        ):
            return Token(
                TokenType.CALL,
                paths=tuple(paths),
                arguments=self._read_call_arguments(),
                col_offset=lexeme.pos,
            )
        return Token(TokenType.VARIABLE, paths=tuple(paths), col_offset=lexeme.pos)

    def _read_call_arguments(self) -> tuple[tuple[Token, ...], ...]:
        self.expect_op("(")
        arguments: list[tuple[Token, ...]] = []
        while not self.is_op(")"):
            if self.at_end:
                raise TokenStreamError("Unclosed call", len(self.content))
            arguments.append(self.get_expression())
            if self.is_op(","):
                self.next()
            elif not self.is_op(")"):
                raise TokenStreamError("Expected ',' or ')' in call", self._offset())
        self.next()
        return tuple(arguments)


@dataclass(slots=True)
class TagOptions:
    """Classification input for one tag occurrence.

    Attributes:
        type: First word of the tag (``=`` for print shorthands)
        close: True for closing tags such as ``/if``
        content: Tag content after the type word
        segment: The dissected segment
        parent: Type of the innermost open expression, if any
    """

    type: str
    close: bool
    content: str
    segment: Segment
    parent: str | None = None
    _stream: TokenStream | None = None

    @classmethod
    def from_segment(cls, segment: Segment, parent: str | None = None) -> TagOptions:
        value = segment.value
        if value.startswith("="):
            return cls("=", False, value[1:].strip(), segment, parent)
        parts = value.split(None, 1)
        word = parts[0] if parts else ""
        rest = parts[1].strip() if len(parts) > 1 else ""
        if word.startswith("/"):
            return cls(word[1:], True, rest, segment, parent)
        return cls(word, False, rest, segment, parent)

    @property
    def stream(self) -> TokenStream:
        """Token stream over ``content``, created on first use."""
        if self._stream is None:
            self._stream = TokenStream(self.content)
        return self._stream
