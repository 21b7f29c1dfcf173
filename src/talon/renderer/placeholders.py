"""Placeholders: block lines whose content is resolved during assembly."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from talon.environment.exceptions import TemplateError
from talon.renderer.block_buffer import INFINITE_LOOP_MARKER
from talon.utils.html import Markup

if TYPE_CHECKING:
    from collections import ChainMap

    from talon.render_context import RenderContext
    from talon.renderer.block_buffer import BlockBuffer, BlockOptions
    from talon.renderer.core import Renderer, TemplateFrame


class Placeholder:
    """Base class: content produced once, on first ``resolve()``.

    Subclasses implement ``get_content``. Whatever it returns is resolved
    further by the renderer (nested placeholders, buffers, renderable
    objects) before being stored in the line list.
    """

    __slots__ = ("_future", "renderer")

    def __init__(self, renderer: Renderer):
        self.renderer = renderer
        self._future: asyncio.Future[Any] | None = None

    def resolve(self, ancestors: tuple[int, ...] = ()) -> asyncio.Future[Any]:
        if self._future is None:
            self._future = asyncio.ensure_future(self._resolve(ancestors))
        return self._future

    async def _resolve(self, ancestors: tuple[int, ...]) -> Any:
        try:
            content = await self.get_content(ancestors)
        except TemplateError:
            raise
        except Exception as err:
            raise self.renderer.content_error(err, self) from err
        return await self.renderer.resolve_value(content, ancestors)

    async def get_content(self, ancestors: tuple[int, ...]) -> Any:
        raise NotImplementedError


class TemplatePlaceholder(Placeholder):
    """Output of another template: ``implement``, ``partial`` or ``include``.

    Queued placeholders are executed by ``Renderer.do_queued_tasks``;
    lazy ones (includes) only when the line is resolved.
    """

    __slots__ = ("_execution", "name", "parent_context", "scope_id", "variables")

    def __init__(
        self,
        renderer: Renderer,
        name: str,
        variables: ChainMap[str, Any],
        scope_id: int,
        parent_context: RenderContext | None,
    ):
        super().__init__(renderer)
        self.name = name
        self.variables = variables
        self.scope_id = scope_id
        self.parent_context = parent_context
        self._execution: asyncio.Future[TemplateFrame] | None = None

    def __repr__(self) -> str:
        return f"<TemplatePlaceholder {self.name!r} scope={self.scope_id}>"

    def execute(self) -> asyncio.Future[TemplateFrame]:
        """Run the template (once) and return its frame."""
        if self._execution is None:
            self._execution = asyncio.ensure_future(
                self.renderer.execute_template(
                    self.name,
                    self.variables,
                    scope_id=self.scope_id,
                    parent_context=self.parent_context,
                )
            )
        return self._execution

    async def get_content(self, ancestors: tuple[int, ...]) -> BlockBuffer:
        frame = await self.execute()
        return frame.root_block


class AssignPlaceholder(Placeholder):
    """Where a named block ends up: an ``he-block`` wrapper element.

    The block is looked up when the placeholder resolves, so blocks
    started by templates that run later still land here. Without a block
    the default content (claimed by ``assign_end``) is used.
    """

    __slots__ = ("default", "name", "options", "scope_id")

    def __init__(self, renderer: Renderer, name: str, options: BlockOptions, scope_id: int):
        super().__init__(renderer)
        self.name = name
        self.options = options
        self.scope_id = scope_id
        self.default: BlockBuffer | None = None

    def __repr__(self) -> str:
        return f"<AssignPlaceholder {self.name!r} scope={self.scope_id}>"

    async def get_content(self, ancestors: tuple[int, ...]) -> Any:
        renderer = self.renderer
        block = renderer.get_block(self.name, self.scope_id)
        content = block if block is not None else self.default
        looped = content is not None and not await renderer.assemble_block(content, ancestors)

        element = renderer.create_element("he-block")
        element.add_class(self.options.class_name)
        if block is not None:
            element.add_class(block.options.class_name)

        # Numbered after the content resolved: inner blocks get lower ids
        element.set_attribute("data-hid", renderer.get_id(renderer.env.document.id_prefix))
        element.set_attribute("data-he-name", self.name)
        if block is not None and block.origin:
            element.set_attribute("data-he-template", block.origin)
        if renderer.theme:
            element.set_attribute("data-theme", renderer.theme)

        for options in (self.options, block.options if block is not None else None):
            if options is None:
                continue
            for name, value in options.attributes.items():
                element.set_attribute(name, value)

        if looped:
            element.append(Markup(INFINITE_LOOP_MARKER))
        elif content is not None:
            element.append(Markup(content.to_html()))
        return element


class DeferredPlaceholder(Placeholder):
    """Result of a callable, awaited at assembly time."""

    __slots__ = ("fn",)

    def __init__(self, renderer: Renderer, fn: Callable[[], Any]):
        super().__init__(renderer)
        self.fn = fn

    def __repr__(self) -> str:
        return f"<DeferredPlaceholder {self.fn!r}>"

    async def get_content(self, ancestors: tuple[int, ...]) -> Any:
        value = self.fn()
        if inspect.isawaitable(value):
            value = await value
        return value
