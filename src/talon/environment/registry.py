"""Command registry for the talon environment.

A command is a code tag whose first word is a registered name:
``<% assign "main" %>`` calls ``fn(renderer, "main")``.
"""

from __future__ import annotations

from collections.abc import Callable, ItemsView, Iterator, KeysView
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from talon.environment.core import Environment
    from talon.renderer import Renderer

Command = Callable[..., Any]


def _print(renderer: Renderer, value: Any = None) -> None:
    renderer.print(value)


def _assign(renderer: Renderer, name: str, options: Any = None, **kwargs: Any) -> None:
    renderer.assign(name, options, **kwargs)


def _assign_end(renderer: Renderer) -> None:
    renderer.assign_end()


def _start(renderer: Renderer, name: str, options: Any = None, **kwargs: Any) -> None:
    renderer.start(name, options, **kwargs)


def _implement(renderer: Renderer, name: str, variables: Any = None) -> None:
    renderer.implement(name, variables)


def _include(renderer: Renderer, name: str, variables: Any = None) -> None:
    renderer.include(name, variables)


def _partial(renderer: Renderer, name: str, variables: Any = None) -> None:
    renderer.partial(name, variables)


def _expands(renderer: Renderer, name: str) -> None:
    renderer.expands(name)


# ``end`` is not a command: <% end %> closes raw compound statements
BUILTIN_COMMANDS: dict[str, Command] = {
    "=": _print,
    "assign": _assign,
    "assign_end": _assign_end,
    "start": _start,
    "implement": _implement,
    "include": _include,
    "partial": _partial,
    "expands": _expands,
}


class CommandRegistry:
    """Dict-like view of an environment's commands.

    Supports:
        - env.commands['name'] = func
        - env.commands.update({'name': func})
        - func = env.commands['name']
        - 'name' in env.commands

    All mutations use copy-on-write, so a template compiling while a
    command is registered sees either the old or the new table.
    """

    __slots__ = ("_attr", "_env")

    def __init__(self, env: Environment, attr: str = "_commands"):
        self._env = env
        self._attr = attr

    def _get_dict(self) -> dict[str, Command]:
        return getattr(self._env, self._attr)

    def _set_dict(self, d: dict[str, Command]) -> None:
        setattr(self._env, self._attr, d)

    def __getitem__(self, name: str) -> Command:
        return self._get_dict()[name]

    def __setitem__(self, name: str, func: Command) -> None:
        new = self._get_dict().copy()
        new[name] = func
        self._set_dict(new)

    def __delitem__(self, name: str) -> None:
        new = self._get_dict().copy()
        del new[name]
        self._set_dict(new)

    def __contains__(self, name: object) -> bool:
        return name in self._get_dict()

    def __iter__(self) -> Iterator[str]:
        return iter(self._get_dict())

    def __len__(self) -> int:
        return len(self._get_dict())

    def get(self, name: str, default: Command | None = None) -> Command | None:
        return self._get_dict().get(name, default)

    def update(self, mapping: dict[str, Command]) -> None:
        new = self._get_dict().copy()
        new.update(mapping)
        self._set_dict(new)

    def copy(self) -> dict[str, Command]:
        return self._get_dict().copy()

    def keys(self) -> KeysView[str]:
        return self._get_dict().keys()

    def items(self) -> ItemsView[str, Command]:
        return self._get_dict().items()
