"""Operator table for structured expressions.

Operators are looked up by their keyword name. Binary operators receive
the running result and the next operand; unary ones only the running
result.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from talon.template.helpers import is_truthy, stringify
from talon.utils.html import is_empty_whitespace, is_empty_whitespace_html


def _text(value: Any) -> str:
    return "" if value is None else stringify(value)


def _compare(fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Wrap a comparison so incomparable operands yield False."""

    def compare(a: Any, b: Any) -> bool:
        try:
            return fn(a, b)
        except TypeError:
            return False

    return compare


def starts_with(a: Any, b: Any) -> bool:
    if isinstance(a, str):
        return a.startswith(_text(b))
    if isinstance(a, Sequence):
        return len(a) > 0 and a[0] == b
    return False


def plus(a: Any, b: Any) -> Any:
    if isinstance(a, str) or isinstance(b, str):
        return _text(a) + _text(b)
    return a + b


def divide(a: Any, b: Any) -> Any:
    if b == 0:
        raise ZeroDivisionError(f"division by zero ({a!r} divide {b!r})")
    if isinstance(a, int) and isinstance(b, int) and a % b == 0:
        return a // b
    return a / b


def empty(a: Any) -> bool:
    if isinstance(a, str):
        return is_empty_whitespace(a)
    return not is_truthy(a)


def empty_html(a: Any) -> bool:
    if isinstance(a, str):
        return is_empty_whitespace_html(a)
    return not is_truthy(a)


BINARY_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "eq": lambda a, b: a == b,
    "starts with": starts_with,
    "gt": _compare(lambda a, b: a > b),
    "ge": _compare(lambda a, b: a >= b),
    "lt": _compare(lambda a, b: a < b),
    "le": _compare(lambda a, b: a <= b),
    "plus": plus,
    "minus": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": divide,
}

UNARY_OPERATORS: dict[str, Callable[[Any], Any]] = {
    "empty": empty,
    "emptyhtml": empty_html,
}
