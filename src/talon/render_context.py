"""talon RenderContext: per-execution error-tracking state.

Compiled templates update ``line`` before every tag, so a failure can be
reported with the template name, the line and the chain of templates
that led there. The context lives in a ContextVar, never in the user's
variables.

Each compiled template runs synchronously between two suspension points,
so one ContextVar value per execution is enough even when many renders
share an event loop.

"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field


@dataclass
class RenderContext:
    """Error-tracking state for one template execution.

    Attributes:
        template_name: Current template name for error messages
        filename: Source file path for error messages
        source: Template source, for runtime error snippets
        line: Current line number (updated by generated code)
        include_depth: How many templates deep this execution is
        max_include_depth: Maximum allowed depth
        template_stack: (template_name, line) of every calling template
    """

    template_name: str | None = None
    filename: str | None = None
    source: str | None = None
    line: int = 0

    # 50 is deep enough for any real layout hierarchy while catching
    # runaway recursion from templates implementing each other.
    include_depth: int = 0
    max_include_depth: int = 50

    template_stack: list[tuple[str, int]] = field(default_factory=list)

    def check_include_depth(self, template_name: str) -> None:
        """Raise if rendering ``template_name`` would exceed the depth limit.

        Raises:
            TemplateRuntimeError: If depth >= max_include_depth
        """
        if self.include_depth >= self.max_include_depth:
            from talon.environment.exceptions import ErrorCode, TemplateRuntimeError

            err = TemplateRuntimeError(
                f"Maximum template depth exceeded ({self.max_include_depth}) "
                f"when rendering '{template_name}'",
                template_name=self.template_name,
                lineno=self.line or None,
                template_stack=self.template_stack,
                suggestion="Check for templates that implement or include each other: A → B → A",
            )
            err.code = ErrorCode.INCLUDE_DEPTH
            raise err

    def child_context(
        self,
        template_name: str | None = None,
        source: str | None = None,
        filename: str | None = None,
    ) -> RenderContext:
        """Context for a nested template, one level deeper.

        The current location is appended to ``template_stack``.
        """
        new_stack = self.template_stack.copy()
        if self.template_name and self.line > 0:
            new_stack.append((self.template_name, self.line))

        return RenderContext(
            template_name=template_name or self.template_name,
            filename=filename,
            source=source,
            line=0,
            include_depth=self.include_depth + 1,
            max_include_depth=self.max_include_depth,
            template_stack=new_stack,
        )


_render_context: ContextVar[RenderContext | None] = ContextVar(
    "talon_render_context",
    default=None,
)


def get_render_context() -> RenderContext | None:
    """Current render context, or None outside template execution."""
    return _render_context.get()


def get_render_context_required() -> RenderContext:
    """Current render context; used by generated code for line tracking.

    Raises:
        RuntimeError: If not executing a template
    """
    ctx = _render_context.get()
    if ctx is None:
        raise RuntimeError("Not in a render context")
    return ctx


@contextmanager
def render_context(ctx: RenderContext) -> Iterator[RenderContext]:
    """Make ``ctx`` current for the duration of the with block."""
    token: Token[RenderContext | None] = _render_context.set(ctx)
    try:
        yield ctx
    finally:
        _render_context.reset(token)
