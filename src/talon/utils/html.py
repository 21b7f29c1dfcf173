"""HTML utilities: escaping, the Markup safe-string type, emptiness checks."""

from __future__ import annotations

import html
import re
from typing import Any

_TAG_RE = re.compile(r"<!--.*?-->|<[^>]*>", re.DOTALL)
_ENTITY_SPACE_RE = re.compile(r"&nbsp;|&#160;|&#xa0;", re.IGNORECASE)

INFINITE_LOOP_MARKER = "<!-- Infinite loop detected -->"


class Markup(str):
    """A string that is already safe HTML.

    Escaping a Markup returns it unchanged, and element children of this
    type are serialized verbatim instead of as escaped text.

        >>> escape(Markup("<b>x</b>"))
        Markup('<b>x</b>')
    """

    __slots__ = ()

    def __new__(cls, value: Any = "") -> Markup:
        if hasattr(value, "__html__"):
            value = value.__html__()
        return super().__new__(cls, value)

    def __html__(self) -> Markup:
        return self

    def __add__(self, other: Any) -> Markup:
        if isinstance(other, str):
            return Markup(str.__add__(self, escape(other)))
        return NotImplemented

    def __radd__(self, other: Any) -> Markup:
        if isinstance(other, str):
            return Markup(str.__add__(escape(other), self))
        return NotImplemented

    def __repr__(self) -> str:
        return f"Markup({str.__repr__(self)})"


def escape(value: Any) -> Markup:
    """Escape a value for HTML text or attribute context.

    Objects implementing ``__html__`` (including Markup) pass through.
    None becomes the empty string.
    """
    if hasattr(value, "__html__"):
        return Markup(value.__html__())
    if value is None:
        return Markup("")
    return Markup(html.escape(str(value), quote=True))


def strip_tags(value: str) -> str:
    """Remove tags and comments, keeping text content."""
    return _TAG_RE.sub("", value)


def is_empty_whitespace(value: str | None) -> bool:
    """True for None, "" and whitespace-only strings."""
    return value is None or not value.strip()


def is_empty_whitespace_html(value: str | None) -> bool:
    """True when markup has no visible text.

    Tags and comments are ignored and non-breaking space entities count
    as whitespace:

        >>> is_empty_whitespace_html(' <p id="p"> </p >')
        True
        >>> is_empty_whitespace_html("<p>a</p>")
        False
    """
    if value is None:
        return True
    text = _ENTITY_SPACE_RE.sub(" ", strip_tags(str(value)))
    return not text.replace("\xa0", " ").strip()
