"""Compiled-template cache owned by one Environment.

An LRU mapping of template name to Template. ``maxsize=None`` keeps
every template for the lifetime of the environment; a template is only
replaced by explicit recompilation or ``clear()``.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from talon.template import Template


class TemplateCache:
    """LRU cache of compiled templates with hit/miss statistics.

    Example:
            >>> cache = TemplateCache(maxsize=2)
            >>> cache.get("page") is None
            True
            >>> cache.info()["misses"]
            1

    """

    __slots__ = ("_data", "_hits", "_misses", "maxsize")

    def __init__(self, maxsize: int | None = None):
        if maxsize is not None and maxsize < 1:
            raise ValueError(f"maxsize must be positive or None, got {maxsize}")
        self.maxsize = maxsize
        self._data: OrderedDict[str, Template] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def get(self, name: str) -> Template | None:
        template = self._data.get(name)
        if template is None:
            self._misses += 1
            return None
        self._hits += 1
        self._data.move_to_end(name)
        return template

    def set(self, name: str, template: Template) -> None:
        self._data[name] = template
        self._data.move_to_end(name)
        if self.maxsize is not None:
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def get_or_set(self, name: str, factory: Callable[[], Template]) -> Template:
        template = self.get(name)
        if template is None:
            template = factory()
            self.set(name, template)
        return template

    def discard(self, name: str) -> None:
        self._data.pop(name, None)

    def clear(self) -> None:
        self._data.clear()
        self._hits = 0
        self._misses = 0

    def info(self) -> dict[str, Any]:
        """Size and hit statistics."""
        total = self._hits + self._misses
        return {
            "size": len(self._data),
            "max_size": self.maxsize,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }
