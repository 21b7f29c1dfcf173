"""Parser error handling for talon."""

from __future__ import annotations

from talon._types import Segment
from talon.environment.exceptions import ErrorCode, TemplateSyntaxError


class TokenStreamError(ValueError):
    """Malformed tag content, raised by the token stream.

    Carries the offset inside the tag content; the parser turns it into
    a located ParseError.
    """

    def __init__(self, message: str, offset: int = 0):
        self.message = message
        self.offset = offset
        super().__init__(message)


class ParseError(TemplateSyntaxError):
    """Syntax error located at a dissected segment.

    Adds an optional suggestion line to the standard syntax error output.
    """

    code: ErrorCode | None = ErrorCode.UNEXPECTED_TOKEN

    def __init__(
        self,
        message: str,
        segment: Segment,
        source: str | None = None,
        name: str | None = None,
        suggestion: str | None = None,
        code: ErrorCode | None = None,
        col_offset: int | None = None,
    ):
        self.segment = segment
        self.suggestion = suggestion
        super().__init__(
            message,
            lineno=segment.lineno,
            name=name,
            source=source,
            col_offset=segment.col_offset if col_offset is None else col_offset,
            code=code,
        )

    def _format_message(self) -> str:
        msg = super()._format_message()
        if self.suggestion:
            msg += f"\n\nSuggestion: {self.suggestion}"
        return msg
