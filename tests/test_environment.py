"""Tests for Environment configuration, loaders, caching and registries."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from talon import DictLoader, Environment
from talon._types import Segment, SegmentType
from talon.environment import (
    ChoiceLoader,
    FileSystemLoader,
    FunctionLoader,
    Loader,
    PrefixLoader,
    TemplateCache,
    TemplateNotFoundError,
)
from talon.environment.exceptions import TemplateError
from talon.expressions.base import Expression
from talon.expressions.kinds import If, Print
from talon.expressions.registry import ExpressionRegistry
from talon.parser.tokens import TagOptions

from .strategies import safe_identifier, safe_integer, template_fragment


class TestConfiguration:
    """Constructor options."""

    def test_custom_delimiters(self) -> None:
        env = Environment(code_delimiters=("<?", "?>"), expression_delimiters=("[[", "]]"))
        assert env.from_string("<? x = 2 ?>[[= x + 1 ]]").render() == "3"

    def test_default_delimiters_become_literal(self) -> None:
        env = Environment(expression_delimiters=("[[", "]]"))
        assert env.from_string("{%= x %}").render() == "{%= x %}"

    def test_identical_open_delimiters_rejected(self) -> None:
        with pytest.raises(ValueError, match="different open delimiters"):
            Environment(code_delimiters=("{%", "%}"))

    def test_repr(self) -> None:
        assert repr(Environment()) == "<Environment loader=None templates=0>"

    def test_from_string_default_name(self) -> None:
        assert Environment().from_string("x").name == "<string>"


def outcome(env: Environment, name: str, source: str, variables: dict) -> str:
    try:
        return env.compile(name, source).render(variables)
    except TemplateError as err:
        return f"{type(err).__name__}: {err}"


class TestRecompilation:
    """The same source always renders the same way."""

    @given(
        source=template_fragment,
        variables=st.dictionaries(safe_identifier, safe_integer, max_size=4),
    )
    @settings(max_examples=50)
    def test_compiling_twice_renders_the_same(self, source: str, variables: dict) -> None:
        env = Environment()
        assert outcome(env, "page", source, variables) == outcome(env, "page", source, variables)

    @given(source=template_fragment)
    @settings(max_examples=25)
    def test_separate_environments_agree(self, source: str) -> None:
        variables = {"x": 1, "name": "n"}
        assert outcome(Environment(), "page", source, variables) == outcome(Environment(), "page", source, variables)


class TestTemplateLoading:
    """get_template caching."""

    def test_cached(self) -> None:
        env = Environment(loader=DictLoader({"a": "A"}))
        first = env.get_template("a")
        assert env.get_template("a") is first
        info = env.cache_info()
        assert (info["hits"], info["misses"], info["size"]) == (1, 1, 1)

    def test_clear_cache(self) -> None:
        env = Environment(loader=DictLoader({"a": "A"}))
        first = env.get_template("a")
        env.clear_cache()
        assert env.get_template("a") is not first

    def test_compiled_template_served_without_loader(self) -> None:
        env = Environment()
        env.compile("inline", "hi {%= who %}")
        assert env.render_sync("inline", {"who": "there"}) == "hi there"

    def test_cache_size(self) -> None:
        env = Environment(loader=DictLoader({"a": "A", "b": "B"}), cache_size=1)
        first = env.get_template("a")
        env.get_template("b")
        assert env.get_template("a") is not first

    @pytest.mark.asyncio
    async def test_async_loader(self) -> None:
        class AsyncLoader:
            def __init__(self):
                self.calls = 0

            async def get_source_async(self, name):
                self.calls += 1
                return f"async {name}", None

            def get_source(self, name):
                raise AssertionError("sync path used")

        loader = AsyncLoader()
        env = Environment(loader=loader)
        template = await env.get_template_async("x")
        assert await template.render_async() == "async x"
        assert await env.get_template_async("x") is template
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_sync_loader_used_from_thread(self) -> None:
        env = Environment(loader=DictLoader({"a": "A"}))
        template = await env.get_template_async("a")
        assert template.name == "a"


class TestFileSystemLoader:
    """Directory-backed sources."""

    @pytest.fixture
    def root(self, tmp_path):
        (tmp_path / "pages").mkdir()
        (tmp_path / "pages" / "home.hwk").write_text("home")
        (tmp_path / "about.html").write_text("about")
        return tmp_path

    def test_extension_added(self, root) -> None:
        source, filename = FileSystemLoader(root).get_source("pages/home")
        assert source == "home"
        assert filename == str(root / "pages" / "home.hwk")

    def test_second_extension(self, root) -> None:
        assert FileSystemLoader(root).get_source("about")[0] == "about"

    def test_explicit_extension(self, root) -> None:
        assert FileSystemLoader(root).get_source("pages/home.hwk")[0] == "home"

    def test_directories_in_order(self, root, tmp_path_factory) -> None:
        override = tmp_path_factory.mktemp("override")
        (override / "about.hwk").write_text("mine")
        assert FileSystemLoader([override, root]).get_source("about")[0] == "mine"

    def test_escaping_names_rejected(self, root) -> None:
        loader = FileSystemLoader(root / "pages")
        with pytest.raises(TemplateNotFoundError, match="Invalid template name"):
            loader.get_source("../about")

    def test_missing(self, root) -> None:
        with pytest.raises(TemplateNotFoundError, match="not found in"):
            FileSystemLoader(root).get_source("nope")

    def test_list_templates(self, root) -> None:
        assert FileSystemLoader(root).list_templates() == ["about", "pages/home"]

    def test_render_through_environment(self, root) -> None:
        (root / "layout.hwk").write_text("[<% assign('body') %>]")
        (root / "page.hwk").write_text("<% expands('layout') %><% start('body') %>x<% end() %>")
        html = Environment(loader=FileSystemLoader(root)).render_sync("page")
        assert html.startswith("[<he-block")
        assert html.endswith(">x</he-block>]")


class TestCompositeLoaders:
    """Choice, prefix and function loaders."""

    def test_choice(self) -> None:
        loader = ChoiceLoader([DictLoader({"a": "first"}), DictLoader({"a": "second", "b": "b"})])
        assert loader.get_source("a") == ("first", None)
        assert loader.get_source("b") == ("b", None)
        assert loader.list_templates() == ["a", "b"]
        with pytest.raises(TemplateNotFoundError, match="any of 2 loaders"):
            loader.get_source("c")

    def test_prefix(self) -> None:
        loader = PrefixLoader({"blog": DictLoader({"post": "P"})})
        assert loader.get_source("blog/post") == ("P", None)
        assert loader.list_templates() == ["blog/post"]
        with pytest.raises(TemplateNotFoundError, match="no loader for prefix 'shop'"):
            loader.get_source("shop/cart")

    def test_function(self) -> None:
        sources = {"a": "A", "b": ("B", "b.hwk")}
        loader = FunctionLoader(sources.get)
        assert loader.get_source("a") == ("A", None)
        assert loader.get_source("b") == ("B", "b.hwk")
        with pytest.raises(TemplateNotFoundError):
            loader.get_source("c")

    def test_protocol(self) -> None:
        assert isinstance(DictLoader({}), Loader)
        assert isinstance(FunctionLoader(lambda name: None), Loader)


class TestTemplateCache:
    """LRU behaviour and statistics."""

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError, match="maxsize"):
            TemplateCache(0)

    def test_lru_eviction(self) -> None:
        cache = TemplateCache(maxsize=2)
        a, b, c = object(), object(), object()
        cache.set("a", a)
        cache.set("b", b)
        cache.get("a")
        cache.set("c", c)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_get_or_set(self) -> None:
        cache = TemplateCache()
        made: list[object] = []

        def factory():
            made.append(object())
            return made[-1]

        first = cache.get_or_set("x", factory)
        assert cache.get_or_set("x", factory) is first
        assert len(made) == 1

    def test_info_and_clear(self) -> None:
        cache = TemplateCache()
        cache.get("missing")
        cache.set("x", object())
        cache.get("x")
        assert cache.info() == {"size": 1, "max_size": None, "hits": 1, "misses": 1, "hit_rate": 0.5}
        cache.discard("x")
        cache.discard("x")
        cache.clear()
        assert cache.info()["misses"] == 0


class TestCommandRegistry:
    """Copy-on-write command table."""

    def test_builtin_commands(self) -> None:
        env = Environment()
        assert {"=", "assign", "assign_end", "start", "implement", "include", "partial", "expands"} <= set(env.commands)
        assert "end" not in env.commands

    def test_set_replaces_table(self) -> None:
        env = Environment()
        before = env._commands
        env.commands["shout"] = lambda renderer, text: None
        assert env._commands is not before
        assert "shout" not in before
        assert "shout" in env.commands

    def test_update_delete_get(self) -> None:
        env = Environment()
        def fn(renderer):
            return None

        env.commands.update({"a": fn})
        assert env.commands["a"] is fn
        assert env.commands.get("missing") is None
        del env.commands["a"]
        assert "a" not in env.commands

    def test_copy_is_detached(self) -> None:
        env = Environment()
        table = env.commands.copy()
        table["x"] = print
        assert "x" not in env.commands

    def test_environments_do_not_share_commands(self) -> None:
        first, second = Environment(), Environment()
        first.register_command("only_first", lambda renderer: None)
        assert "only_first" not in second.commands


class Shout(Expression):
    """{% shout expr %} prints the value upper-cased."""

    name = "Shout"
    keyword = "shout"
    has_body = False
    strip_newline = False

    @classmethod
    def parse_arguments(cls, options):
        return options.stream.get_expression()

    def execute(self) -> None:
        self.renderer.print(str(self.parse_expression(self.arguments)).upper())


def tag(text: str) -> TagOptions:
    return TagOptions.from_segment(Segment(SegmentType.TAG, text, 1, 0, "expression"))


class TestExpressionRegistry:
    """Kinds are matched in registration order, custom kinds first."""

    def test_builtin_match(self) -> None:
        registry = ExpressionRegistry()
        assert registry.match(tag("if x")) is If
        assert registry.match(tag("= x")) is Print
        assert registry.match(tag("frobnicate")) is None

    def test_by_keyword(self) -> None:
        registry = ExpressionRegistry()
        assert registry.by_keyword("if") is If
        assert registry.by_keyword("print") is None

    def test_register_goes_first(self) -> None:
        registry = ExpressionRegistry()
        registry.register(Shout)
        assert next(iter(registry)) is Shout
        assert registry["Shout"] is Shout

    def test_copy_is_independent(self) -> None:
        registry = ExpressionRegistry()
        clone = registry.copy()
        clone.register(Shout)
        assert "Shout" in clone
        assert "Shout" not in registry

    def test_custom_kind_renders(self) -> None:
        env = Environment()
        env.register_expression(Shout)
        assert env.from_string("{% shout name %}!").render(name="bo") == "BO!"
