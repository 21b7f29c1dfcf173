"""Template loaders for the talon environment.

A loader turns a template name into ``(source, filename)``. Template
names carry no extension (``"layouts/base"``); file-backed loaders try
each configured extension in turn.

Built-in Loaders:
- `FileSystemLoader`: Load from filesystem directories
- `DictLoader`: Load from an in-memory mapping (tests, embedded templates)
- `ChoiceLoader`: Try several loaders in order (site overrides, then defaults)
- `PrefixLoader`: Route by the first path segment (plugin namespaces)
- `FunctionLoader`: Wrap a callable

Custom Loaders:
Implement ``get_source``; add ``get_source_async`` when the source lives
behind an async client, otherwise the environment fetches sources in a
worker thread:
    ```python
    class HttpLoader:
        async def get_source_async(self, name: str) -> tuple[str, str | None]:
            response = await client.get(f"/templates/{name}.hwk")
            if response.status == 404:
                raise TemplateNotFoundError(f"Template '{name}' not found")
            return response.text, str(response.url)

        def get_source(self, name: str) -> tuple[str, str | None]:
            raise NotImplementedError
    ```

"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from difflib import get_close_matches
from pathlib import Path
from typing import Protocol, runtime_checkable

from talon.environment.exceptions import TemplateNotFoundError

DEFAULT_EXTENSIONS: tuple[str, ...] = (".hwk", ".html")


@runtime_checkable
class Loader(Protocol):
    """Anything that provides template sources by name."""

    def get_source(self, name: str) -> tuple[str, str | None]: ...


class FileSystemLoader:
    """Load templates from one or more directories.

    ``get_source("pages/home")`` looks for ``pages/home`` as given, then
    with each extension appended, in every directory in order. The first
    existing file wins. Names that would leave a directory are rejected.

    Example:
            >>> loader = FileSystemLoader(["site/templates", "shared/templates"])
            >>> source, filename = loader.get_source("layouts/base")
            >>> filename
            'site/templates/layouts/base.hwk'

    Raises:
        TemplateNotFoundError: If no directory holds the template

    """

    __slots__ = ("_encoding", "_extensions", "_paths")

    def __init__(
        self,
        paths: str | Path | Sequence[str | Path],
        encoding: str = "utf-8",
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ):
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self._paths = [Path(p) for p in paths]
        self._encoding = encoding
        self._extensions = tuple(extensions)

    def _candidates(self, name: str) -> list[str]:
        if Path(name).suffix in self._extensions:
            return [name]
        return [name, *(name + ext for ext in self._extensions)]

    def get_source(self, name: str) -> tuple[str, str]:
        parts = Path(name).parts
        if not parts or ".." in parts or Path(name).is_absolute():
            raise TemplateNotFoundError(f"Invalid template name '{name}'")

        for base in self._paths:
            for candidate in self._candidates(name):
                path = base / candidate
                if path.is_file():
                    return path.read_text(self._encoding), str(path)

        raise TemplateNotFoundError(
            f"Template '{name}' not found in: {', '.join(str(p) for p in self._paths)}"
        )

    def list_templates(self) -> list[str]:
        """Template names (without extension) found in all directories."""
        templates: set[str] = set()
        for base in self._paths:
            if not base.is_dir():
                continue
            for ext in self._extensions:
                for path in base.rglob(f"*{ext}"):
                    templates.add(path.relative_to(base).with_suffix("").as_posix())
        return sorted(templates)


class DictLoader:
    """Load templates from a ``{name: source}`` mapping.

    The filename is None, so error messages show the template name.

    Example:
            >>> env = Environment(loader=DictLoader({"hello": "Hi {%= name %}"}))
            >>> env.render_sync("hello", {"name": "there"})
            'Hi there'

    Raises:
        TemplateNotFoundError: With a close match or the available names

    """

    __slots__ = ("_mapping",)

    def __init__(self, mapping: dict[str, str]):
        self._mapping = mapping

    def get_source(self, name: str) -> tuple[str, None]:
        if name not in self._mapping:
            available = sorted(self._mapping)
            msg = f"Template '{name}' not found"
            matches = get_close_matches(name, available, n=1, cutoff=0.6)
            if matches:
                msg += f". Did you mean '{matches[0]}'?"
            elif available:
                msg += f". Available: {', '.join(available[:10])}"
                if len(available) > 10:
                    msg += f" ... ({len(available)} total)"
            raise TemplateNotFoundError(msg)
        return self._mapping[name], None

    def list_templates(self) -> list[str]:
        return sorted(self._mapping)


class ChoiceLoader:
    """Try several loaders in order; the first that has the template wins.

    Example:
            >>> loader = ChoiceLoader([
            ...     DictLoader({"nav": "<nav>Site</nav>"}),
            ...     FileSystemLoader("default/templates"),
            ... ])

    Raises:
        TemplateNotFoundError: If no loader has the template

    """

    __slots__ = ("_loaders",)

    def __init__(self, loaders: Sequence[Loader]):
        self._loaders = list(loaders)

    def get_source(self, name: str) -> tuple[str, str | None]:
        for loader in self._loaders:
            try:
                return loader.get_source(name)
            except TemplateNotFoundError:
                continue
        raise TemplateNotFoundError(
            f"Template '{name}' not found in any of {len(self._loaders)} loaders"
        )

    def list_templates(self) -> list[str]:
        templates: set[str] = set()
        for loader in self._loaders:
            if hasattr(loader, "list_templates"):
                templates.update(loader.list_templates())
        return sorted(templates)


class PrefixLoader:
    """Route ``"prefix/rest"`` to the loader registered for ``prefix``.

    Example:
            >>> loader = PrefixLoader({
            ...     "blog": FileSystemLoader("plugins/blog/templates"),
            ...     "shop": DictLoader({"cart": "<% implement 'blog/teaser' %>"}),
            ... })

    Raises:
        TemplateNotFoundError: If the prefix is unknown or its loader lacks
            the template

    """

    __slots__ = ("_delimiter", "_mapping")

    def __init__(self, mapping: dict[str, Loader], delimiter: str = "/"):
        self._mapping = mapping
        self._delimiter = delimiter

    def get_source(self, name: str) -> tuple[str, str | None]:
        prefix, _, rest = name.partition(self._delimiter)
        loader = self._mapping.get(prefix)
        if loader is None:
            raise TemplateNotFoundError(
                f"Template '{name}': no loader for prefix '{prefix}'. "
                f"Available prefixes: {', '.join(sorted(self._mapping))}"
            )
        return loader.get_source(rest)

    def list_templates(self) -> list[str]:
        templates: list[str] = []
        for prefix, loader in sorted(self._mapping.items()):
            if hasattr(loader, "list_templates"):
                templates.extend(f"{prefix}{self._delimiter}{name}" for name in loader.list_templates())
        return sorted(templates)


class FunctionLoader:
    """Wrap a callable returning the source, ``(source, filename)`` or None.

    Example:
            >>> env = Environment(loader=FunctionLoader(lambda name: cms.templates.get(name)))

    Raises:
        TemplateNotFoundError: If the callable returns None

    """

    __slots__ = ("_load_func",)

    def __init__(self, load_func: Callable[[str], str | tuple[str, str | None] | None]):
        self._load_func = load_func

    def get_source(self, name: str) -> tuple[str, str | None]:
        result = self._load_func(name)
        if result is None:
            raise TemplateNotFoundError(f"Template '{name}' not found")
        if isinstance(result, str):
            return result, None
        return result

    def list_templates(self) -> list[str]:
        return []
