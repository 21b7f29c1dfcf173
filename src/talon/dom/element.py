"""Minimal server-side element used for block wrappers and rendered content.

Only what the renderer needs: attributes, classes, children and HTML
serialization. Attribute order is stable: ``id``, ``class``, ``for`` and
``name`` come first, the rest in insertion order.

    >>> el = Element("he-block")
    >>> el.set_attribute("data-he-name", "main")
    >>> el.add_class("wide")
    >>> el.append("a < b")
    >>> el.outer_html
    '<he-block class="wide" data-he-name="main">a &lt; b</he-block>'
"""

from __future__ import annotations

import html
from collections.abc import Iterable
from typing import Any

from talon.utils.html import INFINITE_LOOP_MARKER, Markup, escape, strip_tags

PRIORITY_ATTRIBUTES: tuple[str, ...] = ("id", "class", "for", "name")

VOID_ELEMENTS: frozenset[str] = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)


class Element:
    """An HTML element with ordered attributes and mixed children.

    Children are Elements, Markup (raw HTML) or plain strings (text,
    escaped when serialized). Objects with a ``to_html()`` method are
    serialized through it.
    """

    __slots__ = ("_attributes", "children", "tag_name")

    def __init__(self, tag_name: str, attributes: dict[str, Any] | None = None):
        self.tag_name = tag_name.lower()
        self._attributes: dict[str, Any] = {}
        self.children: list[Any] = []
        if attributes:
            for name, value in attributes.items():
                self.set_attribute(name, value)

    def __repr__(self) -> str:
        return f"<Element {self.open_tag()}>"

    # Attributes ----------------------------------------------------------

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    def get_attribute(self, name: str) -> Any:
        return self._attributes.get(name.lower())

    def set_attribute(self, name: str, value: Any) -> None:
        self._attributes[name.lower()] = value

    def remove_attribute(self, name: str) -> None:
        self._attributes.pop(name.lower(), None)

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self._attributes

    @property
    def id(self) -> str | None:
        return self.get_attribute("id")

    @id.setter
    def id(self, value: str) -> None:
        self.set_attribute("id", value)

    # Classes -------------------------------------------------------------

    @property
    def class_list(self) -> list[str]:
        return str(self._attributes.get("class") or "").split()

    def add_class(self, *names: str | Iterable[str] | None) -> None:
        """Add classes; accepts strings (space separated), iterables or None."""
        classes = self.class_list
        for entry in names:
            if not entry:
                continue
            parts = entry.split() if isinstance(entry, str) else list(entry)
            for name in parts:
                if name not in classes:
                    classes.append(name)
        if classes:
            self._attributes["class"] = " ".join(classes)

    def remove_class(self, name: str) -> None:
        classes = [c for c in self.class_list if c != name]
        if classes:
            self._attributes["class"] = " ".join(classes)
        else:
            self._attributes.pop("class", None)

    def has_class(self, name: str) -> bool:
        return name in self.class_list

    # Children ------------------------------------------------------------

    def append(self, *children: Any) -> None:
        for child in children:
            if child is None:
                continue
            if isinstance(child, (list, tuple)):
                self.append(*child)
            else:
                self.children.append(child)

    def normalize(self) -> None:
        """Merge adjacent text and markup children, drop empty strings."""
        self._normalize(())

    def _normalize(self, path: tuple[int, ...]) -> None:
        path = (*path, id(self))
        merged: list[Any] = []
        for child in self.children:
            if isinstance(child, Element):
                if id(child) not in path:
                    child._normalize(path)
                merged.append(child)
                continue
            if isinstance(child, str):
                if not child:
                    continue
                markup = child if isinstance(child, Markup) else escape(child)
                if merged and isinstance(merged[-1], Markup):
                    merged[-1] = Markup(str(merged[-1]) + str(markup))
                else:
                    merged.append(Markup(markup))
                continue
            merged.append(child)
        self.children = merged

    # Serialization -------------------------------------------------------

    def _ordered_attributes(self) -> list[tuple[str, Any]]:
        attrs = self._attributes
        ordered = [(name, attrs[name]) for name in PRIORITY_ATTRIBUTES if name in attrs]
        ordered.extend((name, value) for name, value in attrs.items() if name not in PRIORITY_ATTRIBUTES)
        return ordered

    def open_tag(self) -> str:
        parts = [self.tag_name]
        for name, value in self._ordered_attributes():
            if value is None or value is False:
                continue
            if value is True:
                parts.append(name)
            else:
                parts.append(f'{name}="{escape(value)}"')
        return f"<{' '.join(parts)}>"

    def close_tag(self) -> str:
        if self.tag_name in VOID_ELEMENTS:
            return ""
        return f"</{self.tag_name}>"

    @property
    def inner_html(self) -> str:
        return self._inner_html(())

    @property
    def outer_html(self) -> str:
        return self._outer_html(())

    def _inner_html(self, path: tuple[int, ...]) -> str:
        path = (*path, id(self))
        return "".join(_child_html(child, path) for child in self.children)

    def _outer_html(self, path: tuple[int, ...]) -> str:
        return self.open_tag() + self._inner_html(path) + self.close_tag()

    @property
    def text_content(self) -> str:
        return html.unescape(strip_tags(self.inner_html))

    def __html__(self) -> Markup:
        return Markup(self.outer_html)


def _child_html(child: Any, path: tuple[int, ...] = ()) -> str:
    if isinstance(child, Element):
        # An element nested inside itself
        if id(child) in path:
            return INFINITE_LOOP_MARKER
        return child._outer_html(path)
    if isinstance(child, Markup):
        return str(child)
    if isinstance(child, str):
        return str(escape(child))
    to_html = getattr(child, "to_html", None)
    if to_html is not None:
        return to_html()
    return str(escape(child))
