"""Tag dissector for talon templates.

Splits template source into alternating literal and tag segments. Several
delimiter pairs may be active at once (the code syntax ``<% %>`` and the
expression syntax ``{% %}`` by default); the earliest opening delimiter
wins at every position.

A ``-`` immediately before the close delimiter requests that exactly one
newline following the tag is dropped:

    >>> [s.value for s in dissect("<% x = 1 -%>\\nhi")]
    ['x = 1', 'hi']
"""

from __future__ import annotations

from collections.abc import Sequence

from talon._types import Segment, SegmentType, TagSyntax
from talon.environment.exceptions import ErrorCode, TemplateSyntaxError

DEFAULT_SYNTAXES: tuple[TagSyntax, ...] = (
    TagSyntax("code", "<%", "%>"),
    TagSyntax("expression", "{%", "%}"),
)


def strip_one_newline(text: str) -> str:
    """Drop a single leading newline (``\\n`` or ``\\r\\n``) from text."""
    if text.startswith("\r\n"):
        return text[2:]
    if text.startswith("\n"):
        return text[1:]
    return text


class Lexer:
    """Dissect template source into segments.

    Attributes:
        source: Template source text
        syntaxes: Active delimiter pairs
        name: Template name, used in error messages
    """

    __slots__ = ("_line", "_line_start", "_pos", "name", "source", "syntaxes")

    def __init__(
        self,
        source: str,
        syntaxes: Sequence[TagSyntax] = DEFAULT_SYNTAXES,
        name: str | None = None,
    ):
        self.source = source
        self.syntaxes = tuple(syntaxes)
        self.name = name
        self._pos = 0
        self._line = 1
        self._line_start = 0

    def _advance_to(self, pos: int) -> None:
        """Move the cursor, counting the newlines consumed on the way."""
        chunk = self.source[self._pos:pos]
        newlines = chunk.count("\n")
        if newlines:
            self._line += newlines
            self._line_start = self._pos + chunk.rindex("\n") + 1
        self._pos = pos

    def _next_open(self) -> tuple[int, TagSyntax] | None:
        best: tuple[int, TagSyntax] | None = None
        for syntax in self.syntaxes:
            idx = self.source.find(syntax.open, self._pos)
            if idx == -1:
                continue
            # Longer delimiters win on ties so "{%" beats a hypothetical "{"
            if best is None or idx < best[0] or (
                idx == best[0] and len(syntax.open) > len(best[1].open)
            ):
                best = (idx, syntax)
        return best

    def tokenize(self) -> list[Segment]:
        """Produce the full segment list."""
        segments: list[Segment] = []
        source = self.source
        strip_next = False

        while self._pos < len(source):
            found = self._next_open()
            literal_end = found[0] if found else len(source)

            if literal_end > self._pos:
                text = source[self._pos:literal_end]
                if strip_next:
                    text = strip_one_newline(text)
                if text:
                    segments.append(
                        Segment(
                            SegmentType.LITERAL,
                            text,
                            self._line,
                            self._pos - self._line_start,
                        )
                    )
                self._advance_to(literal_end)
            strip_next = False

            if found is None:
                break

            start, syntax = found
            lineno = self._line
            col = start - self._line_start
            content_start = start + len(syntax.open)
            close = source.find(syntax.close, content_start)
            if close == -1:
                raise TemplateSyntaxError(
                    f"Unterminated tag: '{syntax.open}' is never closed by '{syntax.close}'",
                    lineno=lineno,
                    name=self.name,
                    source=source,
                    col_offset=col,
                    code=ErrorCode.UNCLOSED_TAG,
                )

            content = source[content_start:close]
            trim_right = content.endswith("-")
            if trim_right:
                content = content[:-1]

            segments.append(
                Segment(
                    SegmentType.TAG,
                    content.strip(),
                    lineno,
                    col,
                    syntax=syntax.name,
                    trim_right=trim_right,
                )
            )
            self._advance_to(close + len(syntax.close))
            strip_next = trim_right

        return segments


def dissect(
    source: str,
    syntaxes: Sequence[TagSyntax] = DEFAULT_SYNTAXES,
    name: str | None = None,
) -> list[Segment]:
    """Convenience wrapper around ``Lexer(...).tokenize()``."""
    return Lexer(source, syntaxes, name).tokenize()
