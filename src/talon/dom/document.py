"""Document environments: where the renderer gets its elements from.

The renderer never builds markup objects directly. It asks the
environment's document for elements, so a different host can supply its
own element type without the block assembly code noticing.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from talon.dom.element import Element


@runtime_checkable
class DocumentEnvironment(Protocol):
    """Element factory used by the renderer.

    Attributes:
        id_prefix: Prefix of generated element ids (``h<prefix>-N``)
    """

    id_prefix: str

    def create_element(self, tag_name: str) -> Element: ...


class ServerDocument:
    """Default document for server-side rendering."""

    __slots__ = ("id_prefix",)

    def __init__(self, id_prefix: str = "serverside"):
        self.id_prefix = id_prefix

    def create_element(self, tag_name: str) -> Element:
        return Element(tag_name)

    def __repr__(self) -> str:
        return f"<ServerDocument id_prefix={self.id_prefix!r}>"
