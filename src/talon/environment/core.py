"""talon Environment: configuration, template loading and rendering entry.

One long-lived Environment owns everything shared between renders: the
tag syntaxes, the expression kinds, commands and helpers, the loader and
the compiled-template cache.

Pipeline:
    ```
    source ─► dissect() ─► Parser ─► Compiler ─► Template
                                                    │
    Environment.render(name) ─► Renderer ───────────┘ ─► HTML
    ```

Example:
        >>> from talon import DictLoader, Environment
        >>> env = Environment(loader=DictLoader({
        ...     "base": '<main><% assign("body") %></main>',
        ...     "home": '<% expands("base") %><% start("body") %>Hi<% end() %>',
        ... }))
        >>> env.render_sync("home")
        '<main><he-block data-hid="hserverside-0" data-he-name="body" data-he-template="home">Hi</he-block></main>'

"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from talon._types import TagSyntax
from talon.compiler import Compiler
from talon.dom.document import DocumentEnvironment, ServerDocument
from talon.environment.cache import TemplateCache
from talon.environment.exceptions import TemplateNotFoundError, TemplateSyntaxError
from talon.environment.registry import BUILTIN_COMMANDS, CommandRegistry
from talon.expressions.registry import ExpressionRegistry
from talon.lexer import dissect
from talon.parser import Parser
from talon.renderer import Renderer
from talon.template import Template

if TYPE_CHECKING:
    from talon.environment.loaders import Loader
    from talon.expressions.base import Expression
    from talon.helper import Helper

logger = logging.getLogger(__name__)


class Environment:
    """Central configuration and template management.

    Attributes:
        loader: Source provider, or None for string-only use
        syntaxes: Active tag delimiter pairs (code, then expression)
        autoescape: Escape printed values that are not Markup
        max_include_depth: Deepest allowed chain of nested templates
        document: Element factory used while assembling blocks
        expressions: Registered expression kinds
        commands: Registered commands (copy-on-write mapping)
        helpers: Helper classes, instantiated once per renderer
        globals: Variables visible to every render

    Example:
            >>> env = Environment(expression_delimiters=("[[", "]]"))
            >>> env.from_string("[[= 1 + 2 ]]").render()
            '3'

    """

    def __init__(
        self,
        loader: Loader | None = None,
        *,
        code_delimiters: tuple[str, str] = ("<%", "%>"),
        expression_delimiters: tuple[str, str] = ("{%", "%}"),
        autoescape: bool = False,
        max_include_depth: int = 50,
        document: DocumentEnvironment | None = None,
        cache_size: int | None = None,
        globals: Mapping[str, Any] | None = None,
    ):
        if code_delimiters[0] == expression_delimiters[0]:
            raise ValueError("Code and expression syntaxes need different open delimiters")

        self.loader = loader
        self.syntaxes: tuple[TagSyntax, ...] = (
            TagSyntax("code", *code_delimiters),
            TagSyntax("expression", *expression_delimiters),
        )
        self.autoescape = autoescape
        self.max_include_depth = max_include_depth
        self.document: DocumentEnvironment = document or ServerDocument()
        self.expressions = ExpressionRegistry()
        self._commands: dict[str, Callable[..., Any]] = dict(BUILTIN_COMMANDS)
        self.commands = CommandRegistry(self)
        self.helpers: dict[str, type[Helper]] = {}
        self.globals: dict[str, Any] = dict(globals or {})
        self._cache = TemplateCache(cache_size)

    def __repr__(self) -> str:
        return f"<Environment loader={self.loader!r} templates={len(self._cache)}>"

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_helper(self, name: str, cls: type[Helper]) -> None:
        """Expose one instance of ``cls`` per renderer under ``name``."""
        self.helpers[name] = cls

    def register_command(self, name: str, fn: Callable[..., Any]) -> None:
        """Make ``<% name args %>`` call ``fn(renderer, *args)``.

        Templates compiled earlier keep treating the word as raw code.
        """
        self.commands[name] = fn

    def register_expression(self, kind: type[Expression]) -> type[Expression]:
        """Add a structured expression kind; usable as a class decorator."""
        return self.expressions.register(kind)

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def _compile(self, name: str, source: str, filename: str | None) -> Template:
        segments = dissect(source, self.syntaxes, name)
        node = Parser(segments, self.expressions, self.commands, name, source).parse()
        compiled = Compiler().compile(node, name, filename, source)
        return Template(self, compiled.code, name, filename, source, compiled.arguments)

    def compile(self, name: str, source: str, filename: str | None = None) -> Template:
        """Compile and cache a template.

        Syntax errors do not escape: they are logged and the returned
        Template raises them when rendered.
        """
        try:
            template = self._compile(name, source, filename)
        except TemplateSyntaxError as err:
            logger.error("Failed to compile template '%s':\n%s", name, err.format_compact())
            template = Template(self, None, name, filename, source, compile_error=err)
        self._cache.set(name, template)
        return template

    def from_string(self, source: str, name: str | None = None) -> Template:
        """Compile a template from a string, without caching it.

        Raises:
            TemplateSyntaxError: If the source does not compile
        """
        return self._compile(name or "<string>", source, None)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _require_loader(self, name: str) -> Loader:
        if self.loader is None:
            raise TemplateNotFoundError(f"Template '{name}' not found: the environment has no loader")
        return self.loader

    def get_template(self, name: str) -> Template:
        """Cached template, loaded and compiled on first use.

        Raises:
            TemplateNotFoundError: If the loader has no such template
        """
        template = self._cache.get(name)
        if template is not None:
            return template
        source, filename = self._require_loader(name).get_source(name)
        logger.debug("Loaded template '%s' from %s", name, filename or "loader")
        return self.compile(name, source, filename)

    async def get_template_async(self, name: str) -> Template:
        """Like ``get_template``, without blocking the event loop on I/O."""
        template = self._cache.get(name)
        if template is not None:
            return template
        loader = self._require_loader(name)
        get_source_async = getattr(loader, "get_source_async", None)
        if get_source_async is not None:
            source, filename = await get_source_async(name)
        else:
            source, filename = await asyncio.to_thread(loader.get_source, name)
        logger.debug("Loaded template '%s' from %s", name, filename or "loader")

        # Another render may have compiled it while the source was loading
        template = self._cache.get(name)
        if template is not None:
            return template
        return self.compile(name, source, filename)

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_info(self) -> dict[str, Any]:
        return self._cache.info()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(
        self,
        template: str | Template,
        variables: Mapping[str, Any] | None = None,
        callback: Callable[..., None] | None = None,
    ) -> Renderer:
        """Start rendering; returns the Renderer before any template ran.

        ``callback(error)`` or ``callback(None, html)`` is called once the
        pass ended. The renderer itself can be awaited for the HTML.
        """
        return Renderer(self, template, variables, callback)

    def render_sync(self, template: str | Template, variables: Mapping[str, Any] | None = None) -> str:
        """Render to a string on a fresh event loop.

        Raises:
            TemplateError: Whatever ended the render pass
        """

        async def _render() -> str:
            return await self.render(template, variables).finish()

        return asyncio.run(_render())
