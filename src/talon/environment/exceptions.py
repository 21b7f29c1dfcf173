"""Exceptions for the talon template engine.

Exception Hierarchy:
TemplateError (base)
├── TemplateNotFoundError     # No loader could provide the source
├── TemplateSyntaxError       # Compile-time error (tags, expressions, raw code)
└── TemplateRuntimeError      # Error while executing a compiled template
    └── AsyncContentError     # Renderable content failed to resolve

Runtime errors carry the template name, the line that was executing and
a snippet of the surrounding source with the failing line marked:

    ```
    Runtime Error: division by zero
      Location: page.hwk:4
       |
       2 | <ul>
       3 | {% each items as item %}
    >  4 |   <li>{%= item / 0 %}</li>
       5 | {% /each %}
       |
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from talon.environment import terminal


class ErrorCode(Enum):
    """Searchable error codes.

    Format: T-{CATEGORY}-{NUMBER}
    Categories: LEX (dissector), PAR (parser), RUN (runtime), TPL (loading)
    """

    # Dissector errors
    UNCLOSED_TAG = "T-LEX-001"

    # Parser errors
    UNEXPECTED_TOKEN = "T-PAR-001"
    UNCLOSED_BLOCK = "T-PAR-002"
    INVALID_EXPRESSION = "T-PAR-003"
    INVALID_CODE = "T-PAR-004"
    UNKNOWN_CLOSE = "T-PAR-005"

    # Runtime errors
    RUNTIME_ERROR = "T-RUN-001"
    INCLUDE_DEPTH = "T-RUN-002"
    ASYNC_CONTENT = "T-RUN-003"

    # Template loading errors
    TEMPLATE_NOT_FOUND = "T-TPL-001"
    SYNTAX_ERROR = "T-TPL-002"

    @property
    def category(self) -> str:
        """Error category (lexer, parser, runtime or template)."""
        prefix = self.value.split("-")[1]
        return {
            "LEX": "lexer",
            "PAR": "parser",
            "RUN": "runtime",
            "TPL": "template",
        }.get(prefix, "unknown")


def format_template_stack(stack: list[tuple[str, int]] | None) -> str:
    """Format the chain of templates that led to an error.

    Example:
        >>> print(format_template_stack([("layout.hwk", 3), ("page.hwk", 12)]))
        Template stack:
          • layout.hwk:3
          • page.hwk:12
    """
    if not stack:
        return ""

    lines = [terminal.dim_text("Template stack:")]
    for template_name, line_num in stack:
        lines.append(f"  • {terminal.location(f'{template_name}:{line_num}')}")
    return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source lines around an error.

    Attributes:
        lines: (line_number, content) pairs around the error
        error_line: 1-based line number that failed
        column: Optional column for a caret pointer
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        parts: list[str] = [terminal.dim_text("   |")]
        for lineno, content in self.lines:
            parts.append(
                terminal.format_source_line(lineno, content, is_error=lineno == self.error_line)
            )
        if self.column is not None:
            caret = " " * self.column + "^"
            parts.append(f"{terminal.dim_text('   |')} {terminal.colorize(caret, 'bright_red')}")
        parts.append(terminal.dim_text("   |"))
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 3,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for the caret.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


class TemplateError(Exception):
    """Base exception for all template errors.

    Attributes:
        code: ErrorCode identifying the failure class
    """

    code: ErrorCode | None = None

    def format_compact(self) -> str:
        """Structured, traceback-free summary for terminal display."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        return header


class TemplateNotFoundError(TemplateError):
    """No configured loader could provide the named template."""

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND


class TemplateSyntaxError(TemplateError):
    """Compile-time error in template source.

    When ``source`` and ``lineno`` are known the message includes the
    offending line, with a caret under ``col_offset`` if given.
    """

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        code: ErrorCode | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.name = name
        self.filename = filename
        self.source = source
        self.col_offset = col_offset
        if code is not None:
            self.code = code
        super().__init__(self._format_message())

    @property
    def location(self) -> str:
        loc = self.filename or self.name or "<template>"
        if self.lineno:
            loc += f":{self.lineno}"
        return loc

    def _snippet_lines(self) -> list[str]:
        if not (self.source and self.lineno):
            return []
        lines = self.source.splitlines()
        if not 0 < self.lineno <= len(lines):
            return []
        out = ["   |", f"{self.lineno:>3} | {lines[self.lineno - 1]}"]
        if self.col_offset is not None:
            out.append(f"   | {' ' * self.col_offset}^")
        return out

    def _format_message(self) -> str:
        header = f"Syntax Error: {self.message}\n  --> {self.location}"
        snippet = self._snippet_lines()
        if snippet:
            return header + "\n" + "\n".join(snippet)
        return header

    def format_compact(self) -> str:
        code_prefix = f"{self.code.value}: " if self.code else ""
        parts = [f"{code_prefix}{self.message}", f"  --> {self.location}"]
        snippet = self._snippet_lines()
        if snippet:
            parts.extend(snippet)
            parts.append("   |")
        return "\n".join(parts)


class TemplateRuntimeError(TemplateError):
    """Error raised while a compiled template was executing.

    Attributes:
        message: Error description
        template_name: Template that was executing
        lineno: Last line marker reached before the failure
        source_snippet: Surrounding source with the failing line marked
        template_stack: (template_name, line) chain of nested templates
        suggestion: Optional hint
    """

    code: ErrorCode | None = ErrorCode.RUNTIME_ERROR

    def __init__(
        self,
        message: str,
        *,
        template_name: str | None = None,
        lineno: int | None = None,
        suggestion: str | None = None,
        source_snippet: SourceSnippet | None = None,
        template_stack: list[tuple[str, int]] | None = None,
    ):
        self.message = message
        self.template_name = template_name
        self.lineno = lineno
        self.suggestion = suggestion
        self.source_snippet = source_snippet
        self.template_stack = template_stack or []
        super().__init__(self._format_message())

    @property
    def location(self) -> str:
        loc = self.template_name or "<template>"
        if self.lineno:
            loc += f":{self.lineno}"
        return loc

    def _detail_parts(self) -> list[str]:
        parts = [f"  Location: {terminal.location(self.location)}"]
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.template_stack:
            parts.append("")
            parts.append(format_template_stack(self.template_stack))
        return parts

    def _format_message(self) -> str:
        parts = [f"Runtime Error: {self.message}"]
        if self.template_name or self.lineno:
            parts.extend(self._detail_parts())
        if self.suggestion:
            parts.append(f"\n  {terminal.hint('Suggestion:')} {self.suggestion}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        parts = [
            terminal.format_error_header(self.code.value if self.code else None, self.message)
        ]
        parts.extend(self._detail_parts())
        if self.suggestion:
            parts.append(f"  {terminal.hint('Hint:')} {self.suggestion}")
        return "\n".join(parts)


class AsyncContentError(TemplateRuntimeError):
    """A renderable content object failed while resolving."""

    code: ErrorCode | None = ErrorCode.ASYNC_CONTENT
