"""Pure runtime helpers used by compiled templates and expressions.

None of these close over Environment or Renderer state.

"""

from __future__ import annotations

import builtins
import math
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from typing import Any

from talon.render_context import get_render_context_required

_MISSING = object()


def is_truthy(value: Any) -> bool:
    """Template truthiness.

    None, False, 0, NaN and "" are falsy. Sized values (lists, tuples,
    mappings, anything with ``__len__``) are truthy only when non-empty.
    Every other object is truthy.
    """
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if hasattr(value, "__len__"):
        try:
            return len(value) > 0
        except TypeError:
            return True
    return True


def resolve_segment(obj: Any, segment: str) -> Any:
    """One step of path resolution: key, then attribute, then index."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        value = obj.get(segment, _MISSING)
        if value is not _MISSING:
            return value
    if not segment.startswith("_"):
        value = getattr(obj, segment, _MISSING)
        if value is not _MISSING:
            return value
    if segment.lstrip("-").isdigit() and isinstance(obj, Sequence) and not isinstance(obj, str):
        index = int(segment)
        if -len(obj) <= index < len(obj):
            return obj[index]
    return None


def resolve_path(obj: Any, path: Sequence[str]) -> Any:
    """Follow a dotted path; any missing step yields None.

        >>> resolve_path({"test": {"two": {"three": 3}}}, ("test", "two", "three"))
        3
        >>> resolve_path({}, ("nope", "nope")) is None
        True
    """
    for segment in path:
        obj = resolve_segment(obj, segment)
        if obj is None:
            return None
    return obj


def collection_keys(value: Any) -> tuple[Any, list[Any]]:
    """Return ``(collection, keys)`` for iteration.

    Mappings iterate over their keys, sequences over their indices. Other
    iterables are materialized into a list first. Strings and scalars have
    no keys.
    """
    if value is None or isinstance(value, (str, bytes)):
        return value, []
    if isinstance(value, Mapping):
        return value, list(value.keys())
    if isinstance(value, Sequence):
        return value, list(range(len(value)))
    if isinstance(value, Iterable):
        items = list(value)
        return items, list(range(len(items)))
    return value, []


def stringify(value: Any) -> str:
    """Text form of a printed value."""
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def assign_variable(variables: MutableMapping[str, Any], name: str, value: Any) -> Any:
    """Backs ``(name := value)`` in raw code: bind into the scope, return the value."""
    variables[name] = value
    return value


STATIC_NAMESPACE: dict[str, Any] = {
    # Class bodies in raw code read __name__ for __module__
    "__name__": "talon.template",
    "__builtins__": {"__import__": __import__, "__build_class__": builtins.__build_class__},
    "_get_render_ctx": get_render_context_required,
    "_assign": assign_variable,
}
