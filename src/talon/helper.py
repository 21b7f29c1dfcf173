"""Base class for helpers: per-render objects reachable by name from templates.

    >>> class Links(Helper):
    ...     def url(self, path):
    ...         return f"{self.renderer.env.globals['base_url']}{path}"
    >>> env.register_helper("Links", Links)

Inside templates ``{%= Links.url("/about") %}`` or
``<%= Links.url("/about") %>`` call the renderer's own instance.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from talon.environment import Environment
    from talon.renderer import Renderer


class Helper:
    """Helper bound to one renderer.

    Attributes:
        renderer: The render pass this instance belongs to
    """

    def __init__(self, renderer: Renderer):
        self.renderer = renderer

    def __repr__(self) -> str:
        return f"<{type(self).__name__} helper>"

    @property
    def env(self) -> Environment:
        return self.renderer.env

    def print(self, value: Any) -> None:
        """Print into whatever block the template is currently writing."""
        self.renderer.print(value)
