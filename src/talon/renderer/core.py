"""talon Renderer: one render pass from template name to final HTML.

A Renderer runs the compiled function of a template, routes its output
into blocks, executes the templates it pulls in (``implement``,
``partial``, ``include``, ``expands``) and finally assembles the root
block.

States:
    ```
    pending ──► executing ──► finishing ──► done
                    │              │
                    └──────────────┴──────► errored
    ```

Only template execution is synchronous; loading sources, running queued
templates and resolving placeholders happen between suspension points of
one asyncio task. A failure anywhere ends the pass: the error is stored,
reported once to the callback and raised by ``finish()``; partially
assembled output is discarded.

Example:
        >>> from talon import DictLoader, Environment
        >>> env = Environment(loader=DictLoader({"hi": "Hi {%= name %}"}))
        >>> env.render_sync("hi", {"name": "you"})
        'Hi you'

"""

from __future__ import annotations

import asyncio
import builtins
import inspect
import itertools
import logging
from collections import ChainMap
from collections.abc import Callable, Generator, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from talon.dom.element import Element
from talon.environment.exceptions import (
    AsyncContentError,
    TemplateError,
    TemplateNotFoundError,
)
from talon.render_context import RenderContext, get_render_context
from talon.renderer.block_buffer import INFINITE_LOOP_MARKER, PUSH, BlockBuffer, BlockOptions
from talon.renderer.placeholders import (
    AssignPlaceholder,
    DeferredPlaceholder,
    Placeholder,
    TemplatePlaceholder,
)
from talon.template.core import Template
from talon.template.helpers import resolve_path, stringify
from talon.utils.html import Markup, escape
from talon.utils.tasks import parallel, series

if TYPE_CHECKING:
    from talon.environment import Environment
    from talon.expressions.base import BodyFunction, Expression
    from talon.helper import Helper

logger = logging.getLogger(__name__)

_MISSING = object()

RenderCallback = Callable[..., None]


class RenderState(Enum):
    """Lifecycle of a Renderer."""

    PENDING = "pending"
    EXECUTING = "executing"
    FINISHING = "finishing"
    DONE = "done"
    ERRORED = "errored"


@dataclass(slots=True)
class TemplateFrame:
    """One execution of one template.

    Attributes:
        template: Template being executed
        variables: Variable scope of the execution
        scope_id: Block namespace; ``partial`` opens a new one
        root_block: Receives output outside of any started block
        context: Error-tracking context of the execution
        block_stack: Blocks opened with ``start`` and not yet ended
        open_assigns: Assigns whose default content is still being written
        expansion: Template named by ``expands``, run after this one
    """

    template: Template
    variables: ChainMap[str, Any]
    scope_id: int
    root_block: BlockBuffer
    context: RenderContext
    block_stack: list[BlockBuffer] = field(default_factory=list)
    open_assigns: list[tuple[BlockBuffer, int, AssignPlaceholder]] = field(default_factory=list)
    expansion: str | None = None

    @property
    def current_block(self) -> BlockBuffer:
        return self.block_stack[-1] if self.block_stack else self.root_block


def _is_content(value: Any) -> bool:
    """Values printed as lines instead of as text."""
    return isinstance(value, (Element, BlockBuffer, Placeholder)) or hasattr(value, "render_content")


class Renderer:
    """Renders one template (and everything it pulls in) to HTML.

    Created by ``Environment.render()``, which returns it before any
    template code ran, so a theme can still be set:

        ```python
        renderer = env.render("page", {"title": "Home"})
        renderer.set_theme("dark")
        html = await renderer
        ```

    Everything public on the renderer is reachable by name from raw
    template code: ``<% start("main") %>``, ``<% implement("nav") %>``.

    Attributes:
        env: Owning Environment
        state: Current RenderState
        theme: Active theme, or None
        exposed: Values published with ``expose()``
        html: Final output once done
        error: The failure once errored
    """

    def __init__(
        self,
        env: Environment,
        template: str | Template,
        variables: Mapping[str, Any] | None = None,
        callback: RenderCallback | None = None,
    ):
        self.env = env
        self.state = RenderState.PENDING
        self.theme: str | None = None
        self.exposed: dict[str, Any] = {}
        self.html: str | None = None
        self.error: BaseException | None = None

        self._template = template
        self._variables: ChainMap[str, Any] = ChainMap({}, dict(variables or {}), env.globals)
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

        self._frames: list[TemplateFrame] = []
        self._expressions: list[Expression] = []
        self._blocks: dict[tuple[int, str], BlockBuffer] = {}
        self._scope_ids = itertools.count()
        self._counters: dict[str, itertools.count[int]] = {}
        self._helpers: dict[str, Helper] = {}

        self._queue: list[Callable[[], Any]] = []
        self._draining: asyncio.Future[None] | None = None

        # Blocks and renderable objects being resolved, plus who waits on whom
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._units: list[Any] = []
        self._waits: dict[int, set[int]] = {}

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self._ensure_task()

    def __repr__(self) -> str:
        name = self._template.name if isinstance(self._template, Template) else self._template
        return f"<Renderer {name!r} state={self.state.value}>"

    # ------------------------------------------------------------------
    # Driving the render pass
    # ------------------------------------------------------------------

    def _ensure_task(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def _set_state(self, state: RenderState) -> None:
        logger.debug("Renderer %r: %s -> %s", self._template, self.state.value, state.value)
        self.state = state

    async def _run(self) -> None:
        try:
            self._set_state(RenderState.EXECUTING)
            frame = await self.execute_template(self._template, self._variables)
            await self.do_queued_tasks()
            self._set_state(RenderState.FINISHING)
            await self.assemble_block(frame.root_block)
            html = frame.root_block.to_html()
        except Exception as err:
            self.error = err
            self._set_state(RenderState.ERRORED)
        else:
            self.html = html
            self._set_state(RenderState.DONE)

        if self._callback is not None:
            if self.error is not None:
                self._callback(self.error)
            else:
                self._callback(None, self.html)

    async def finish(self) -> str:
        """Wait for the render pass and return the HTML.

        Raises:
            TemplateError: Whatever ended the pass
        """
        await self._ensure_task()
        if self.error is not None:
            raise self.error
        assert self.html is not None
        return self.html

    def __await__(self) -> Generator[Any, None, str]:
        return self.finish().__await__()

    # ------------------------------------------------------------------
    # Template execution
    # ------------------------------------------------------------------

    @property
    def current_frame(self) -> TemplateFrame:
        if not self._frames:
            raise RuntimeError("No template is executing")
        return self._frames[-1]

    @property
    def current_template(self) -> str | None:
        return self._frames[-1].template.name if self._frames else None

    def new_scope(self) -> int:
        return next(self._scope_ids)

    async def get_template(self, name: str | Template) -> Template:
        """Load a template, preferring the themed variant ``{theme}/{name}``."""
        if isinstance(name, Template):
            return name
        if self.theme:
            try:
                return await self.env.get_template_async(f"{self.theme}/{name}")
            except TemplateNotFoundError:
                logger.debug("No %r variant of %r, using the default", self.theme, name)
        return await self.env.get_template_async(name)

    async def execute_template(
        self,
        template: str | Template,
        variables: ChainMap[str, Any],
        *,
        scope_id: int | None = None,
        parent_context: RenderContext | None = None,
    ) -> TemplateFrame:
        """Execute a template and the chain of templates it expands.

        Returns the frame of the last template in the chain; its root
        block holds the output.

        Raises:
            TemplateRuntimeError: On failures, or when nesting exceeds
                ``Environment.max_include_depth``
        """
        if scope_id is None:
            scope_id = self.new_scope()
        current = await self.get_template(template)

        while True:
            if parent_context is None:
                context = RenderContext(
                    template_name=current.name,
                    filename=current.filename,
                    source=current.source,
                    max_include_depth=self.env.max_include_depth,
                )
            else:
                parent_context.check_include_depth(current.name)
                context = parent_context.child_context(current.name, current.source, current.filename)

            frame = TemplateFrame(
                template=current,
                variables=variables,
                scope_id=scope_id,
                root_block=BlockBuffer(self, current.name),
                context=context,
            )
            self._frames.append(frame)
            try:
                current.execute(self, frame)
            finally:
                self._frames.pop()

            if frame.expansion is None:
                return frame
            parent_context = context
            current = await self.get_template(frame.expansion)

    def _call_context(self) -> RenderContext | None:
        """Snapshot of the calling template's context for a nested template."""
        ctx = get_render_context()
        if ctx is None:
            return None
        return replace(ctx, template_stack=list(ctx.template_stack))

    def queue(self, task: Callable[[], Any]) -> None:
        """Schedule a coroutine factory; queued tasks run in series."""
        self._queue.append(task)

    def do_queued_tasks(self) -> asyncio.Future[None]:
        """Run queued tasks one after another until the queue is empty.

        Concurrent callers share the same drain.
        """
        if self._draining is None or self._draining.done():
            self._draining = asyncio.ensure_future(self._drain())
        return self._draining

    async def _drain(self) -> None:
        while self._queue:
            batch, self._queue = self._queue, []
            await series(*batch)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @property
    def current_block(self) -> BlockBuffer:
        return self.current_frame.current_block

    def print(self, value: Any) -> None:
        """Print a value into the current block.

        Elements, buffers, placeholders and renderable objects are kept as
        lines and resolved at assembly. Other values are converted to text,
        escaped when autoescape is on and the value is not Markup.
        """
        if value is None:
            return
        block = self.current_block
        if _is_content(value):
            block.push(value)
        elif isinstance(value, Markup):
            block.push(str(value))
        elif self.env.autoescape:
            block.push(str(escape(stringify(value))))
        else:
            block.push(stringify(value))

    def print_literal(self, text: str) -> None:
        self.current_block.push(text)

    def create_element(self, tag_name: str) -> Element:
        return self.env.document.create_element(tag_name)

    def get_id(self, prefix: str = "id") -> str:
        """Unique id per prefix within this render: ``h<prefix>-<n>``."""
        counter = self._counters.get(prefix)
        if counter is None:
            counter = self._counters[prefix] = itertools.count()
        return f"h{prefix}-{next(counter)}"

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def get_block(self, name: str, scope_id: int | None = None) -> BlockBuffer | None:
        if scope_id is None:
            scope_id = self.current_frame.scope_id
        return self._blocks.get((scope_id, name))

    def start(self, name: str, options: BlockOptions | Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Route output into the named block until ``end``.

        Starting a block again from the same template (or with
        ``append=True``) appends to it. From another template the first
        definition wins, unless ``content="push"`` adds another instance.
        """
        frame = self.current_frame
        block_options = BlockOptions.from_value(options, **kwargs)
        origin = frame.template.name
        key = (frame.scope_id, name)
        block = self._blocks.get(key)

        if block is None:
            block = BlockBuffer(self, name, block_options, origin)
            self._blocks[key] = block
        elif block.origin == origin or block_options.append:
            pass
        elif block_options.content == PUSH:
            instance = BlockBuffer(self, name, block_options, origin)
            block.other_instances.append(instance)
            block = instance
        else:
            # Already defined elsewhere: the output is discarded
            block = BlockBuffer(self, name, block_options, origin)

        frame.block_stack.append(block)

    def end(self, name: str | None = None) -> None:
        """Close the innermost started block, or back to the named one."""
        stack = self.current_frame.block_stack
        if not stack:
            logger.debug("end(%r) without a started block in %s", name, self.current_template)
            return
        if name is None:
            stack.pop()
            return
        for index in range(len(stack) - 1, -1, -1):
            if stack[index].name == name:
                del stack[index:]
                return
        logger.debug("end(%r): block was not started in %s", name, self.current_template)

    def assign(self, name: str, options: BlockOptions | Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Place the named block here, wrapped in an ``he-block`` element."""
        frame = self.current_frame
        block = frame.current_block
        placeholder = AssignPlaceholder(self, name, BlockOptions.from_value(options, **kwargs), frame.scope_id)
        index = block.push(placeholder)
        frame.open_assigns.append((block, index, placeholder))

    def assign_end(self) -> None:
        """Output since the last ``assign`` becomes that assign's default content."""
        frame = self.current_frame
        if not frame.open_assigns:
            raise RuntimeError("assign_end() called without an open assign()")
        block, index, placeholder = frame.open_assigns.pop()
        placeholder.default = block.splice(index + 1)

    # ------------------------------------------------------------------
    # Nested templates
    # ------------------------------------------------------------------

    def _template_placeholder(
        self,
        name: str,
        variables: Mapping[str, Any] | None,
        scope_id: int,
    ) -> TemplatePlaceholder:
        child = self.current_frame.variables.new_child(dict(variables or {}))
        return TemplatePlaceholder(self, name, child, scope_id, self._call_context())

    def implement(self, name: str, variables: Mapping[str, Any] | None = None) -> None:
        """Insert another template's output here, sharing this scope's blocks.

        The template runs after the current one finished.
        """
        placeholder = self._template_placeholder(name, variables, self.current_frame.scope_id)
        self.queue(placeholder.execute)
        self.current_block.push(placeholder)

    def partial(self, name: str, variables: Mapping[str, Any] | None = None) -> None:
        """Like ``implement``, but with a block scope of its own."""
        placeholder = self._template_placeholder(name, variables, self.new_scope())
        self.queue(placeholder.execute)
        self.current_block.push(placeholder)

    def include(self, name: str, variables: Mapping[str, Any] | None = None) -> None:
        """Like ``implement``, but only executed if this output is assembled."""
        placeholder = self._template_placeholder(name, variables, self.current_frame.scope_id)
        self.current_block.push(placeholder)

    def expands(self, name: str) -> None:
        """Run ``name`` after this template; it can assign this one's blocks."""
        self.current_frame.expansion = name

    def defer(self, fn: Callable[[], Any]) -> None:
        """Print the result of ``fn`` (awaited if needed), computed at assembly."""
        self.current_block.push(DeferredPlaceholder(self, fn))

    def set_theme(self, theme: str | None) -> None:
        self.theme = theme

    def expose(self, name: str, value: Any) -> None:
        self.exposed[name] = value

    # ------------------------------------------------------------------
    # Expressions, commands and name lookup
    # ------------------------------------------------------------------

    @property
    def current_expression(self) -> Expression | None:
        return self._expressions[-1] if self._expressions else None

    def start_expression(
        self,
        kind: str,
        arguments: Any,
        variables: MutableMapping[str, Any],
        fn: BodyFunction | None = None,
    ) -> Expression:
        """Instantiate an expression kind and push it on the expression stack."""
        expression = self.env.expressions[kind](self, arguments, variables, fn)
        self._expressions.append(expression)
        return expression

    def pop_expression(self, expression: Expression) -> None:
        if self._expressions and self._expressions[-1] is expression:
            self._expressions.pop()
        elif expression in self._expressions:
            self._expressions.remove(expression)

    def command(self, name: str, *args: Any, **kwargs: Any) -> Any:
        fn = self.env.commands.get(name)
        if fn is None:
            raise NameError(f"Unknown command '{name}'")
        return fn(self, *args, **kwargs)

    def get_helper(self, name: str) -> Helper | None:
        """Per-renderer helper instance, created on first use."""
        helper = self._helpers.get(name)
        if helper is None:
            cls = self.env.helpers.get(name)
            if cls is None:
                return None
            helper = self._helpers[name] = cls(self)
        return helper

    def lookup(self, variables: Mapping[str, Any], name: str) -> Any:
        """Resolve a bare name from raw template code.

        Order: variables, helpers, public renderer members, builtins.

        Raises:
            NameError: If no source defines the name
        """
        value = variables.get(name, _MISSING)
        if value is not _MISSING:
            return value
        helper = self.get_helper(name)
        if helper is not None:
            return helper
        if not name.startswith("_"):
            value = getattr(self, name, _MISSING)
            if value is not _MISSING:
                return value
        value = getattr(builtins, name, _MISSING)
        if value is not _MISSING:
            return value
        raise NameError(f"name '{name}' is not defined")

    def resolve_callable(self, path: Sequence[str], variables: Mapping[str, Any]) -> Callable[..., Any] | None:
        """Function named by a dotted call path, or None."""
        if not path:
            return None
        try:
            target = self.lookup(variables, path[0])
        except NameError:
            return None
        if len(path) > 1:
            target = resolve_path(target, path[1:])
        return target if callable(target) else None

    # ------------------------------------------------------------------
    # Placeholder resolution
    # ------------------------------------------------------------------

    def content_error(self, error: Exception, source: Any) -> AsyncContentError:
        return AsyncContentError(
            f"{type(error).__name__} while resolving {source!r}: {error}",
            template_name=self.current_template,
            suggestion="Check the render_content() or deferred function of this object",
        )

    async def resolve_lines(self, lines: list[Any], ancestors: tuple[int, ...] = ()) -> list[Any]:
        """Resolve every pending line of a level together, nested levels after."""
        pending = [i for i, line in enumerate(lines) if _needs_resolving(line)]
        if not pending:
            return lines
        values = await parallel(*(self.resolve_value(lines[i], ancestors) for i in pending))
        resolved = list(lines)
        for index, value in zip(pending, values, strict=True):
            resolved[index] = value
        return resolved

    async def resolve_value(self, value: Any, ancestors: tuple[int, ...] = ()) -> Any:
        """Resolve one value until nothing pending is left in it."""
        if isinstance(value, Placeholder):
            return await value.resolve(ancestors)
        if isinstance(value, BlockBuffer):
            if not await self.assemble_block(value, ancestors):
                return Markup(INFINITE_LOOP_MARKER)
            return value
        if isinstance(value, Element):
            value.children = await self.resolve_lines(_cut_self_nesting(value), ancestors)
            return value
        if isinstance(value, (list, tuple)):
            return await self.resolve_lines(list(value), ancestors)
        if hasattr(value, "render_content") and not isinstance(value, str):
            return await self.resolve_content(value, ancestors)
        return value

    async def assemble_block(self, block: BlockBuffer, ancestors: tuple[int, ...] = ()) -> bool:
        """Assemble a block on behalf of ``ancestors``.

        Returns False instead of waiting when the block (directly or
        through blocks waiting on each other) needs its own output.
        """
        key = id(block)
        if self._waits_on(key, ancestors):
            logger.debug("Block %r contains itself", block.name)
            return False
        self._track(key, block, lambda: block.assemble(ancestors), ancestors)
        await self._pending[key]
        return True

    async def resolve_content(self, obj: Any, ancestors: tuple[int, ...] = ()) -> Any:
        """Resolve a renderable object, at most once per instance.

        An object whose content needs itself (directly, or through other
        objects waiting on each other) yields a comment marker instead.
        """
        key = id(obj)
        if self._waits_on(key, ancestors):
            logger.debug("Content of %r depends on itself", obj)
            return Markup(INFINITE_LOOP_MARKER)
        self._track(
            key,
            obj,
            lambda: asyncio.ensure_future(self._render_content(obj, (*ancestors, key))),
            ancestors,
        )
        return await self._pending[key]

    def _track(
        self,
        key: int,
        unit: Any,
        start: Callable[[], asyncio.Future[Any]],
        ancestors: tuple[int, ...],
    ) -> None:
        if key not in self._pending:
            # Keeps the unit alive so its id is not reused during the pass
            self._units.append(unit)
            self._pending[key] = start()
        if ancestors:
            self._waits.setdefault(ancestors[-1], set()).add(key)

    def _waits_on(self, key: int, ancestors: tuple[int, ...]) -> bool:
        """Whether ``key`` is an ancestor, or its pending resolution waits on one."""
        if not ancestors:
            return False
        targets = set(ancestors)
        stack = [key]
        seen: set[int] = set()
        while stack:
            node = stack.pop()
            if node in targets:
                return True
            if node in seen:
                continue
            seen.add(node)
            future = self._pending.get(node)
            if future is None or future.done():
                continue
            stack.extend(self._waits.get(node, ()))
        return False

    async def _render_content(self, obj: Any, ancestors: tuple[int, ...]) -> Any:
        try:
            value = obj.render_content()
            if inspect.isawaitable(value):
                value = await value
        except TemplateError:
            raise
        except Exception as err:
            raise self.content_error(err, obj) from err
        return await self.resolve_value(value, ancestors)


def _needs_resolving(line: Any, seen: set[int] | None = None) -> bool:
    if isinstance(line, str):
        return False
    if isinstance(line, BlockBuffer):
        return not line.is_assembled
    if isinstance(line, (list, tuple)):
        return any(_needs_resolving(item, seen) for item in line)
    if isinstance(line, Element):
        seen = set() if seen is None else seen
        if id(line) in seen:
            return False
        seen.add(id(line))
        return any(_needs_resolving(child, seen) for child in line.children)
    return isinstance(line, Placeholder) or hasattr(line, "render_content")


def _cut_self_nesting(element: Element, path: tuple[int, ...] = ()) -> list[Any]:
    """Children of ``element``, with elements nested inside themselves replaced by the loop marker."""
    path = (*path, id(element))
    children: list[Any] = []
    for child in element.children:
        if isinstance(child, Element):
            if id(child) in path:
                child = Markup(INFINITE_LOOP_MARKER)
            else:
                child.children = _cut_self_nesting(child, path)
        children.append(child)
    return children
