"""Shared utilities: HTML helpers and task combinators."""

from talon.utils.html import Markup, escape, is_empty_whitespace_html, strip_tags
from talon.utils.tasks import flatten, parallel, series

__all__ = [
    "Markup",
    "escape",
    "flatten",
    "is_empty_whitespace_html",
    "parallel",
    "series",
    "strip_tags",
]
