"""BlockBuffer: ordered output lines of one named block.

Lines are HTML strings, elements, nested buffers and placeholders for
content that is only known later (templates queued with ``implement``,
lazy includes, assigns, renderable objects). ``assemble()``
resolves every placeholder; only then can the buffer be serialized with
``to_html()`` or ``to_elements()``.

Trim directives are recorded by line index and applied while joining, so
``"Bla bla "``, a trim marker and ``" bla bla"`` join to ``"Bla blabla bla"``.

"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from talon.dom.element import Element
from talon.utils.html import INFINITE_LOOP_MARKER, Markup, is_empty_whitespace_html
from talon.utils.tasks import flatten

if TYPE_CHECKING:
    from talon.renderer.core import Renderer

PUSH = "push"

_nameless = itertools.count()


@dataclass(frozen=True, slots=True)
class BlockOptions:
    """Options of a started or assigned block.

    Attributes:
        append: Keep appending even when another template owns the block
        class_name: Classes for the ``he-block`` wrapper
        content: ``"push"`` merges instances from several templates;
            anything else keeps the first definition
        attributes: Extra attributes for the wrapper element
    """

    append: bool = False
    class_name: str | None = None
    content: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, options: BlockOptions | Mapping[str, Any] | None = None, **kwargs: Any) -> BlockOptions:
        """Build options from a mapping and/or keywords.

        ``className`` is accepted as an alias of ``class_name``.
        """
        if isinstance(options, BlockOptions):
            base = options
            values: dict[str, Any] = {}
        else:
            base = cls()
            values = dict(options or {})
        values.update(kwargs)
        if "className" in values:
            values.setdefault("class_name", values.pop("className"))
        unknown = set(values) - {"append", "class_name", "content", "attributes"}
        if unknown:
            raise TypeError(f"Unknown block option(s): {', '.join(sorted(unknown))}")
        return replace(base, **values)


def line_html(line: Any) -> str:
    """HTML of one assembled line."""
    if line is None:
        return ""
    if isinstance(line, str):
        return line
    if isinstance(line, Element):
        return line.outer_html
    if isinstance(line, BlockBuffer):
        return line.to_html()
    if isinstance(line, (list, tuple)):
        return "".join(line_html(item) for item in line)
    if hasattr(line, "__html__"):
        return str(line.__html__())
    return str(line)


class BlockBuffer:
    """Output lines of one block, plus its trim directives.

    Attributes:
        name: Block name (``nameless-N`` when anonymous)
        renderer: Owning renderer
        origin: Name of the template that started the block, or None for
            template root buffers and assign defaults
        options: BlockOptions
        lines: Output lines
        trims: ``{line_index: (left, right)}``
        trim_blanks: Line indices of ``trim blank`` markers
        other_instances: Buffers of the same name merged in push mode
    """

    __slots__ = (
        "_assembled",
        "_serializing",
        "is_assembled",
        "lines",
        "name",
        "options",
        "origin",
        "other_instances",
        "renderer",
        "trim_blanks",
        "trims",
    )

    def __init__(
        self,
        renderer: Renderer,
        name: str | None = None,
        options: BlockOptions | None = None,
        origin: str | None = None,
    ):
        self.renderer = renderer
        self.name = name or f"nameless-{next(_nameless)}"
        self.origin = origin
        self.options = options or BlockOptions()
        self.lines: list[Any] = []
        self.trims: dict[int, tuple[bool, bool]] = {}
        self.trim_blanks: set[int] = set()
        self.other_instances: list[BlockBuffer] = []
        self.is_assembled = False
        self._assembled: asyncio.Future[BlockBuffer] | None = None
        self._serializing = False

    def __repr__(self) -> str:
        return f"<BlockBuffer {self.name!r} origin={self.origin!r} lines={len(self.lines)}>"

    def __len__(self) -> int:
        return len(self.lines)

    def push(self, line: Any) -> int:
        """Append a line and return its index."""
        self.lines.append(line)
        return len(self.lines) - 1

    def trim(self, left: bool = True, right: bool = True) -> None:
        """Record a trim point at the current position."""
        self.trims[len(self.lines)] = (left, right)
        self.push("")

    def trim_blank_elements(self) -> None:
        """Empty everything so far if, once assembled, it has no visible text."""
        self.trim_blanks.add(len(self.lines))
        self.push("")

    def splice(self, index: int) -> BlockBuffer:
        """Move lines from ``index`` on (and their trims) into a new buffer."""
        result = BlockBuffer(self.renderer, f"{self.name}-splice-{index}", origin=None)
        result.lines = self.lines[index:]
        del self.lines[index:]
        for position in [i for i in self.trims if i >= index]:
            result.trims[position - index] = self.trims.pop(position)
        for position in [i for i in self.trim_blanks if i >= index]:
            self.trim_blanks.discard(position)
            result.trim_blanks.add(position - index)
        return result

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(self, ancestors: tuple[int, ...] = ()) -> asyncio.Future[BlockBuffer]:
        """Resolve all placeholders; memoized, every call gets the same future.

        ``ancestors`` identifies the renderable objects whose resolution
        led here, so self-referencing content can be detected.
        """
        if self._assembled is None:
            self._assembled = asyncio.ensure_future(self._assemble(ancestors))
        return self._assembled

    async def _assemble(self, ancestors: tuple[int, ...]) -> BlockBuffer:
        ancestors = (*ancestors, id(self))
        await self._assemble_lines(ancestors)

        if self.options.content == PUSH and self.other_instances:
            for other in self.other_instances:
                other.options = replace(other.options, content=PUSH)
                if await self.renderer.assemble_block(other, ancestors):
                    self.lines.append(other.lines[0])

        self.is_assembled = True
        return self

    async def _assemble_lines(self, ancestors: tuple[int, ...]) -> None:
        renderer = self.renderer
        await renderer.do_queued_tasks()
        self.lines = await renderer.resolve_lines(self.lines, ancestors)

        if self.options.content == PUSH:
            wrapper = renderer.create_element("he-block")
            wrapper.add_class(self.options.class_name)
            wrapper.append(Markup(self._join()))
            self.lines = [wrapper]
            self.trims = {}
            self.trim_blanks = set()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _check_assembled(self) -> None:
        if not self.is_assembled:
            raise RuntimeError(
                f"Unable to serialize block '{self.name}': it has not been assembled yet"
            )

    def to_html(self) -> str:
        """Join the assembled lines, applying trim directives.

        Raises:
            RuntimeError: If called before ``assemble()`` finished
        """
        if self._serializing:
            return INFINITE_LOOP_MARKER
        self._check_assembled()
        self._serializing = True
        try:
            return self._join()
        finally:
            self._serializing = False

    def _join(self) -> str:
        html = ""
        trim_right = False
        trims = self.trims
        trim_blanks = self.trim_blanks

        for i, raw in enumerate(self.lines):
            line = line_html(raw)

            if trims:
                left, right = trims.get(i, (False, False))
                if trim_right or left:
                    if not trim_right:
                        html = html.rstrip()
                    line = line.lstrip()
                    if line:
                        trim_right = False
                if trim_right or right:
                    line = line.rstrip()
                    trim_right = True

            html += line

            if (i + 1) in trim_blanks and is_empty_whitespace_html(html):
                html = ""

        return html

    def to_elements(self) -> list[Any]:
        """Flatten the assembled lines into strings and elements.

        Nested lists and buffers are flattened and elements normalized.

        Raises:
            RuntimeError: If called before ``assemble()`` finished
        """
        self._check_assembled()
        result: list[Any] = []
        for entry in flatten(self.lines):
            if isinstance(entry, BlockBuffer):
                result.extend(entry.to_elements())
                continue
            if isinstance(entry, Element):
                entry.normalize()
            result.append(entry)
        return result
