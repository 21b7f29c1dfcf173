"""Registry of structured expression kinds."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from talon.expressions.kinds import BUILTIN_EXPRESSIONS

if TYPE_CHECKING:
    from talon.expressions.base import Expression
    from talon.parser.tokens import TagOptions


class ExpressionRegistry:
    """Ordered, name-addressable set of expression kinds.

    Supports:
        - registry['If'] -> If
        - registry.register(MyKind)
        - registry.match(options) -> first kind whose ``matches()`` accepts the tag
        - 'If' in registry

    Mutations replace the underlying dict (copy-on-write), so templates
    compiling concurrently keep a consistent view.
    """

    __slots__ = ("_kinds",)

    def __init__(self, kinds: tuple[type[Expression], ...] = BUILTIN_EXPRESSIONS):
        self._kinds: dict[str, type[Expression]] = {kind.name: kind for kind in kinds}

    def __getitem__(self, name: str) -> type[Expression]:
        return self._kinds[name]

    def __contains__(self, name: object) -> bool:
        return name in self._kinds

    def __iter__(self) -> Iterator[type[Expression]]:
        return iter(self._kinds.values())

    def __len__(self) -> int:
        return len(self._kinds)

    def get(self, name: str) -> type[Expression] | None:
        return self._kinds.get(name)

    def register(self, kind: type[Expression]) -> type[Expression]:
        """Add (or replace) a kind; usable as a class decorator.

        Custom kinds are tried before the built-in ones.
        """
        new = {kind.name: kind}
        new.update((name, k) for name, k in self._kinds.items() if name != kind.name)
        self._kinds = new
        return kind

    def match(self, options: TagOptions) -> type[Expression] | None:
        """Kind handling an opening tag, or None for raw pass-through."""
        for kind in self._kinds.values():
            if kind.matches(options):
                return kind
        return None

    def by_keyword(self, keyword: str) -> type[Expression] | None:
        """Kind closed by ``/keyword``."""
        for kind in self._kinds.values():
            if kind.has_body and kind.keyword == keyword:
                return kind
        return None

    def copy(self) -> ExpressionRegistry:
        clone = ExpressionRegistry(())
        clone._kinds = self._kinds.copy()
        return clone
