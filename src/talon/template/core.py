"""talon Template: compiled template object ready for rendering.

The Template class wraps a compiled code object and the argument table
its expressions index into.

Architecture:
    ```
    Template
    ├── _env_ref: WeakRef[Environment]  # Prevents circular refs
    ├── _code: code object              # Compiled Python bytecode
    ├── _render_func: callable          # Extracted render(_render, vars)
    ├── compile_error                   # Set when compilation failed
    └── name, filename, source          # For error messages
    ```

A template never produces output on its own: the generated function
prints into the current block of a Renderer. ``render()`` and
``render_async()`` create a Renderer for one-off use.

Memory Safety:
Uses ``weakref.ref(env)`` to break potential cycles:
``Template → (weak) → Environment → cache → Template``

"""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any

from talon.environment.exceptions import TemplateError
from talon.render_context import render_context
from talon.template.helpers import STATIC_NAMESPACE

if TYPE_CHECKING:
    import types

    from talon.environment import Environment
    from talon.environment.exceptions import TemplateRuntimeError, TemplateSyntaxError
    from talon.render_context import RenderContext
    from talon.renderer import Renderer, TemplateFrame


class Template:
    """Compiled template ready for rendering.

    Wraps a compiled code object containing a ``render(_render, vars)``
    function. Templates are immutable after construction and can be
    executed by any number of renderers.

    Attributes:
        name: Template identifier (for error messages and block origins)
        filename: Source file path (for error messages)
        source: Template source, for runtime error snippets
        compile_error: The TemplateSyntaxError raised while compiling, if any

    Example:
            >>> from talon import Environment
            >>> env = Environment()
            >>> t = env.from_string("Hello, {%= name %}!")
            >>> t.render(name="World")
            'Hello, World!'

    """

    __slots__ = (
        "_code",
        "_env_ref",
        "_namespace",
        "_render_func",
        "compile_error",
        "filename",
        "name",
        "source",
    )

    def __init__(
        self,
        env: Environment,
        code: types.CodeType | None,
        name: str | None,
        filename: str | None = None,
        source: str | None = None,
        arguments: tuple[Any, ...] = (),
        compile_error: TemplateSyntaxError | None = None,
    ):
        self._env_ref: weakref.ref[Environment] = weakref.ref(env)
        self._code = code
        self.name = name or "<template>"
        self.filename = filename
        self.source = source
        self.compile_error = compile_error
        self._render_func = None

        namespace: dict[str, Any] = dict(STATIC_NAMESPACE)
        namespace["_args"] = arguments
        self._namespace = namespace
        if code is not None:
            exec(code, namespace)
            self._render_func = namespace["render"]

    def __repr__(self) -> str:
        status = " (failed)" if self.compile_error else ""
        return f"<Template {self.name!r}{status}>"

    @property
    def env(self) -> Environment:
        env = self._env_ref()
        if env is None:
            raise RuntimeError(f"Environment of template '{self.name}' has been garbage collected")
        return env

    def execute(self, renderer: Renderer, frame: TemplateFrame) -> None:
        """Run the compiled function against ``frame``'s variables.

        Output goes to the renderer's current block. Failures are raised
        as TemplateRuntimeError carrying the template name, the last line
        reached and a source snippet.

        Raises:
            TemplateSyntaxError: If this template failed to compile
            TemplateRuntimeError: If the template code raised
        """
        if self.compile_error is not None:
            raise self.compile_error
        assert self._render_func is not None

        with render_context(frame.context) as ctx:
            try:
                self._render_func(renderer, frame.variables)
            except TemplateError:
                raise
            except Exception as e:
                raise self._enhance_error(e, ctx) from e

    def _enhance_error(self, error: Exception, render_ctx: RenderContext) -> TemplateRuntimeError:
        """Convert a Python exception into a TemplateRuntimeError with context."""
        from talon.environment.exceptions import TemplateRuntimeError, build_source_snippet

        error_str = str(error).strip()
        error_type = type(error).__name__
        if error_str:
            error_str = f"{error_type}: {error_str}"
        else:
            error_str = f"{error_type} (no details available)"

        lineno = render_ctx.line or None
        snippet = None
        if self.source and lineno:
            snippet = build_source_snippet(self.source, lineno)

        suggestion = None
        if isinstance(error, NameError):
            suggestion = "Pass the name as a variable, or register it as a helper"

        return TemplateRuntimeError(
            error_str,
            template_name=render_ctx.template_name,
            lineno=lineno,
            suggestion=suggestion,
            source_snippet=snippet,
            template_stack=render_ctx.template_stack,
        )

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render to a string on a fresh event loop.

        Accepts a variables dict, keyword variables, or both.

        Raises:
            RuntimeError: If called from a running event loop; use
                ``await template.render_async()`` there
        """
        variables = dict(*args, **kwargs)
        return self.env.render_sync(self, variables)

    async def render_async(self, *args: Any, **kwargs: Any) -> str:
        """Render inside the running event loop."""
        variables = dict(*args, **kwargs)
        return await self.env.render(self, variables)

