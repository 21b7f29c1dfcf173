"""Tests for the Renderer: blocks, nested templates and placeholder resolution."""

from __future__ import annotations

from collections import ChainMap

import pytest

from talon import DictLoader, Element, Environment, Helper, RenderState
from talon.environment.exceptions import (
    ErrorCode,
    TemplateNotFoundError,
    TemplateRuntimeError,
)
from talon.renderer import INFINITE_LOOP_MARKER, Renderer

from .conftest import assert_contains


def make_env(templates: dict[str, str], **kwargs) -> Environment:
    return Environment(loader=DictLoader(templates), **kwargs)


def he_block(hid: int, name: str, content: str, template: str | None = None) -> str:
    origin = f' data-he-template="{template}"' if template else ""
    return f'<he-block data-hid="hserverside-{hid}" data-he-name="{name}"{origin}>{content}</he-block>'


class TestRenderPass:
    """Lifecycle, awaiting and callbacks."""

    @pytest.mark.asyncio
    async def test_await_returns_html(self) -> None:
        env = make_env({"hi": "Hi {%= name %}"})
        assert await env.render("hi", {"name": "you"}) == "Hi you"

    def test_render_sync(self) -> None:
        env = make_env({"hi": "Hi {%= name %}"})
        assert env.render_sync("hi", {"name": "you"}) == "Hi you"

    @pytest.mark.asyncio
    async def test_states(self) -> None:
        env = make_env({"hi": "Hi"})
        renderer = env.render("hi")
        assert renderer.state is RenderState.PENDING
        html = await renderer
        assert renderer.state is RenderState.DONE
        assert renderer.html == html == "Hi"

    @pytest.mark.asyncio
    async def test_finish_twice(self) -> None:
        env = make_env({"hi": "Hi"})
        renderer = env.render("hi")
        assert await renderer.finish() == "Hi"
        assert await renderer.finish() == "Hi"

    @pytest.mark.asyncio
    async def test_callback_success(self) -> None:
        calls = []
        env = make_env({"hi": "Hi"})
        await env.render("hi", callback=lambda *args: calls.append(args))
        assert calls == [(None, "Hi")]

    @pytest.mark.asyncio
    async def test_callback_error(self) -> None:
        calls = []
        env = make_env({})
        renderer = env.render("missing", callback=lambda *args: calls.append(args))
        with pytest.raises(TemplateNotFoundError):
            await renderer
        assert renderer.state is RenderState.ERRORED
        assert len(calls) == 1
        assert isinstance(calls[0][0], TemplateNotFoundError)

    @pytest.mark.asyncio
    async def test_globals_visible(self) -> None:
        env = make_env({"hi": "{%= site %}"}, globals={"site": "talon"})
        assert await env.render("hi") == "talon"

    @pytest.mark.asyncio
    async def test_variables_shadow_globals(self) -> None:
        env = make_env({"hi": "{%= site %}"}, globals={"site": "talon"})
        assert await env.render("hi", {"site": "mine"}) == "mine"

    @pytest.mark.asyncio
    async def test_render_template_object(self) -> None:
        env = Environment()
        template = env.from_string("{%= 2 * 3 %}")
        assert await template.render_async() == "6"

    def test_no_frame_outside_execution(self) -> None:
        env = Environment()
        renderer = Renderer(env, env.from_string(""))
        with pytest.raises(RuntimeError, match="No template is executing"):
            renderer.current_frame
        assert renderer.current_template is None


class TestExpands:
    """A template expanding a layout fills the layout's assigns."""

    @pytest.mark.asyncio
    async def test_layout(self, env_with_loader) -> None:
        html = await env_with_loader.render("pages/home")
        assert html == (
            '<div class="main">\n'
            "\t<hr>\n"
            "\t" + he_block(0, "main", "\nThis is the main content\n", "pages/home") + "\n"
            "</div>"
        )

    def test_sync_layout(self) -> None:
        env = make_env(
            {
                "base": '<main><% assign("body") %></main>',
                "home": '<% expands("base") %><% start("body") %>Hi<% end() %>',
            }
        )
        assert env.render_sync("home") == f"<main>{he_block(0, 'body', 'Hi', 'home')}</main>"

    @pytest.mark.asyncio
    async def test_chain(self) -> None:
        env = make_env(
            {
                "root": "<% assign('a') %>",
                "middle": "<% expands('root') %><% start('a') %>[<% assign('b') %>]<% end() %>",
                "leaf": "<% expands('middle') %><% start('b') %>leaf<% end() %>",
            }
        )
        html = await env.render("leaf")
        assert html == he_block(1, "a", "[" + he_block(0, "b", "leaf", "leaf") + "]", "middle")

    @pytest.mark.asyncio
    async def test_loose_child_output_discarded(self) -> None:
        env = make_env({"base": "B<% assign('x') %>", "page": "<% expands('base') %>loose"})
        assert await env.render("page") == "B" + he_block(0, "x", "")

    @pytest.mark.asyncio
    async def test_unfilled_assign_keeps_default(self) -> None:
        env = make_env({"base": "<% assign 'x' %>default<% assign_end %>"})
        assert await env.render("base") == he_block(0, "x", "default")

    @pytest.mark.asyncio
    async def test_filled_assign_replaces_default(self) -> None:
        env = make_env(
            {
                "base": "<% assign('x') %>default<% assign_end() %>!",
                "page": "<% expands('base') %><% start('x') %>mine<% end() %>",
            }
        )
        assert await env.render("page") == he_block(0, "x", "mine", "page") + "!"

    @pytest.mark.asyncio
    async def test_assign_end_without_assign(self) -> None:
        env = make_env({"page": "<% assign_end() %>"})
        with pytest.raises(TemplateRuntimeError, match="without an open assign"):
            await env.render("page")


class TestBlocks:
    """start/end ownership rules."""

    @pytest.mark.asyncio
    async def test_same_template_appends(self) -> None:
        env = make_env({"page": "<% start('a') %>1<% end() %><% start('a') %>2<% end() %><% assign('a') %>"})
        assert await env.render("page") == he_block(0, "a", "12", "page")

    @pytest.mark.asyncio
    async def test_first_definition_wins(self) -> None:
        env = make_env(
            {
                "base": "<% start('a') %>base<% end() %><% assign('a') %>",
                "page": "<% expands('base') %><% start('a') %>page<% end() %>",
            }
        )
        assert await env.render("page") == he_block(0, "a", "page", "page")

    @pytest.mark.asyncio
    async def test_append_option(self) -> None:
        env = make_env(
            {
                "base": "<% start('a', append=True) %>+base<% end() %><% assign('a') %>",
                "page": "<% expands('base') %><% start('a') %>page<% end() %>",
            }
        )
        assert await env.render("page") == he_block(0, "a", "page+base", "page")

    @pytest.mark.asyncio
    async def test_push_instances(self) -> None:
        env = make_env(
            {
                "page": (
                    "<% start('s', content='push') %>one<% end() %>"
                    "<% implement('other') %>"
                    "<% assign('s') %>"
                ),
                "other": "<% start('s', content='push') %>two<% end() %>",
            }
        )
        html = await env.render("page")
        assert html == he_block(0, "s", "<he-block>one</he-block><he-block>two</he-block>", "page")

    @pytest.mark.asyncio
    async def test_class_and_attributes(self) -> None:
        env = make_env(
            {"page": "<% start('a', class_name='wide') %>x<% end() %><% assign('a', attributes={'role': 'main'}) %>"}
        )
        html = await env.render("page")
        assert html == (
            '<he-block class="wide" data-hid="hserverside-0" data-he-name="a" '
            'data-he-template="page" role="main">x</he-block>'
        )

    @pytest.mark.asyncio
    async def test_end_by_name_closes_inner_blocks(self) -> None:
        env = make_env(
            {"page": "<% start('a') %>A<% start('b') %>B<% end('a') %>out<% assign('a') %><% assign('b') %>"}
        )
        html = await env.render("page")
        assert html.startswith("out")
        assert_contains(html, 'data-he-name="a" data-he-template="page">A</he-block>')
        assert_contains(html, 'data-he-name="b" data-he-template="page">B</he-block>')

    @pytest.mark.asyncio
    async def test_end_without_block_is_ignored(self) -> None:
        env = make_env({"page": "a<% end() %>b"})
        assert await env.render("page") == "ab"

    @pytest.mark.asyncio
    async def test_inner_blocks_numbered_first(self) -> None:
        env = make_env(
            {
                "page": (
                    "<% start('outer') %>[<% assign('inner') %>]<% end() %>"
                    "<% start('inner') %>i<% end() %>"
                    "<% assign('outer') %>"
                )
            }
        )
        html = await env.render("page")
        assert html == he_block(1, "outer", "[" + he_block(0, "inner", "i", "page") + "]", "page")

    @pytest.mark.asyncio
    async def test_block_assigned_inside_itself(self) -> None:
        env = make_env({"page": "<% start('a') %>x<% assign('a') %><% end() %><% assign('a') %>"})
        html = await env.render("page")
        assert_contains(html, "x", INFINITE_LOOP_MARKER)

    @pytest.mark.asyncio
    async def test_blocks_assigned_inside_each_other(self) -> None:
        env = make_env(
            {
                "page": (
                    "<% start('a') %>A<% assign('b') %><% end() %>"
                    "<% start('b') %>B<% assign('a') %><% end() %>"
                    "<% assign('a') %><% assign('b') %>"
                )
            }
        )
        html = await env.render("page")
        assert_contains(html, "A", "B", INFINITE_LOOP_MARKER)


class TestNestedTemplates:
    """implement, partial and include."""

    @pytest.mark.asyncio
    async def test_implement(self) -> None:
        env = make_env({"page": "A<% implement('part', {'x': 1}) %>B", "part": "[{%= x %}]"})
        assert await env.render("page") == "A[1]B"

    @pytest.mark.asyncio
    async def test_implement_command(self, env_with_loader) -> None:
        template = env_with_loader.from_string("<% implement 'partials/text', {'text': 'T'} %>")
        assert await template.render_async() == "TEXT: T"

    @pytest.mark.asyncio
    async def test_child_sees_parent_variables(self) -> None:
        env = make_env({"page": "<% implement('part') %>", "part": "{%= title %}"})
        assert await env.render("page", {"title": "T"}) == "T"

    @pytest.mark.asyncio
    async def test_child_variables_do_not_leak(self) -> None:
        env = make_env({"page": "<% implement('part', {'x': 1}) %>[{%= x %}]", "part": "{%= x %}"})
        assert await env.render("page") == "1[]"

    @pytest.mark.asyncio
    async def test_implement_shares_blocks(self) -> None:
        env = make_env({"page": "<% implement('part') %>|<% assign('side') %>", "part": "<% start('side') %>S<% end() %>"})
        assert await env.render("page") == "|" + he_block(0, "side", "S", "part")

    @pytest.mark.asyncio
    async def test_partial_has_own_blocks(self) -> None:
        env = make_env({"page": "<% partial('part') %>|<% assign('side') %>", "part": "<% start('side') %>S<% end() %>"})
        assert await env.render("page") == "|" + he_block(0, "side", "")

    @pytest.mark.asyncio
    async def test_partial_assigns_its_own_blocks(self) -> None:
        env = make_env({"page": "<% partial('card') %>", "card": "<% start('t') %>T<% end() %>(<% assign('t') %>)"})
        assert await env.render("page") == "(" + he_block(0, "t", "T", "card") + ")"

    @pytest.mark.asyncio
    async def test_include(self, env_with_loader) -> None:
        template = env_with_loader.from_string("<% include('partials/hello', {'name': 'Bo'}) %>")
        assert await template.render_async() == "Hello Bo!"

    @pytest.mark.asyncio
    async def test_include_is_lazy(self) -> None:
        env = make_env({"page": "<% start('hidden') %><% include('missing') %><% end() %>ok"})
        assert await env.render("page") == "ok"

    @pytest.mark.asyncio
    async def test_implement_missing_template(self) -> None:
        env = make_env({"page": "<% implement('missing') %>"})
        with pytest.raises(TemplateNotFoundError):
            await env.render("page")

    @pytest.mark.asyncio
    async def test_depth_limit(self) -> None:
        env = make_env({"loop": "x<% implement('loop') %>"}, max_include_depth=5)
        with pytest.raises(TemplateRuntimeError) as exc_info:
            await env.render("loop")
        assert exc_info.value.code is ErrorCode.INCLUDE_DEPTH


class TestThemes:
    """Themed template variants."""

    @pytest.mark.asyncio
    async def test_theme_variant(self) -> None:
        env = make_env({"page": "default", "dark/page": "dark"})
        renderer = env.render("page")
        renderer.set_theme("dark")
        assert await renderer == "dark"

    @pytest.mark.asyncio
    async def test_fallback_to_default(self) -> None:
        env = make_env({"page": "default"})
        renderer = env.render("page")
        renderer.set_theme("dark")
        assert await renderer == "default"

    @pytest.mark.asyncio
    async def test_theme_on_block_wrapper(self) -> None:
        env = make_env({"page": "<% start('a') %>x<% end() %><% assign('a') %>"})
        renderer = env.render("page")
        renderer.set_theme("dark")
        assert_contains(await renderer, 'data-theme="dark"')

    @pytest.mark.asyncio
    async def test_theme_set_from_template(self) -> None:
        env = make_env({"page": "<% set_theme('dark') %><% implement('part') %>", "part": "plain", "dark/part": "dark"})
        assert await env.render("page") == "dark"


class TestHelpersAndCommands:
    """Per-render helpers, registered commands, defer and expose."""

    @pytest.mark.asyncio
    async def test_helper(self) -> None:
        class Links(Helper):
            def url(self, path):
                return "https://example.com" + path

        env = make_env({"page": "{%= Links.url('/about') %}"})
        env.register_helper("Links", Links)
        assert await env.render("page") == "https://example.com/about"

    @pytest.mark.asyncio
    async def test_helper_instance_per_render(self) -> None:
        class Count(Helper):
            def __init__(self, renderer):
                super().__init__(renderer)
                self.n = 0

            def next(self):
                self.n += 1
                return self.n

        env = make_env({"page": "{%= Count.next() %}{%= Count.next() %}"})
        env.register_helper("Count", Count)
        assert await env.render("page") == "12"
        assert await env.render("page") == "12"

    @pytest.mark.asyncio
    async def test_helper_print(self) -> None:
        class Out(Helper):
            pass

        env = make_env({"page": "<% Out.print('x') %>"})
        env.register_helper("Out", Out)
        assert await env.render("page") == "x"

    @pytest.mark.asyncio
    async def test_registered_command(self) -> None:
        env = make_env({"page": "<% shout 'hi', '!' %>"})
        env.register_command("shout", lambda renderer, text, end="": renderer.print(text.upper() + end))
        assert await env.render("page") == "HI!"

    @pytest.mark.asyncio
    async def test_unknown_command(self) -> None:
        env = make_env({"page": "<% command('nope') %>"})
        with pytest.raises(TemplateRuntimeError, match="Unknown command 'nope'"):
            await env.render("page")

    @pytest.mark.asyncio
    async def test_defer(self) -> None:
        async def fetch():
            return "fetched"

        env = make_env({"page": "[<% defer(fetch) %>|<% defer(lambda: 'sync') %>]"})
        assert await env.render("page", {"fetch": fetch}) == "[fetched|sync]"

    @pytest.mark.asyncio
    async def test_expose(self) -> None:
        env = make_env({"page": "<% expose('title', 'Home') %>"})
        renderer = env.render("page")
        await renderer
        assert renderer.exposed == {"title": "Home"}

    def test_lookup_order(self) -> None:
        env = Environment()
        renderer = Renderer(env, env.from_string(""))
        assert renderer.lookup(ChainMap({"get_id": 1}), "get_id") == 1
        assert renderer.lookup(ChainMap(), "get_id") == renderer.get_id
        assert renderer.lookup(ChainMap(), "len") is len
        with pytest.raises(NameError):
            renderer.lookup(ChainMap(), "_blocks")


class TestRenderableContent:
    """Objects with render_content() printed into blocks."""

    @pytest.mark.asyncio
    async def test_sync_and_async_content(self) -> None:
        class Widget:
            def render_content(self):
                return "<w>"

        class AsyncWidget:
            async def render_content(self):
                return "<aw>"

        env = make_env({"page": "{%= a %}{%= b %}"})
        assert await env.render("page", {"a": Widget(), "b": AsyncWidget()}) == "<w><aw>"

    @pytest.mark.asyncio
    async def test_content_returning_element(self) -> None:
        class Badge:
            def render_content(self):
                element = Element("span")
                element.add_class("badge")
                element.append("1 < 2")
                return element

        env = make_env({"page": "{%= badge %}"})
        assert await env.render("page", {"badge": Badge()}) == '<span class="badge">1 &lt; 2</span>'

    @pytest.mark.asyncio
    async def test_content_is_not_escaped(self) -> None:
        class Widget:
            def render_content(self):
                return "<w>"

        env = make_env({"page": "{%= w %}"}, autoescape=True)
        assert await env.render("page", {"w": Widget()}) == "<w>"

    @pytest.mark.asyncio
    async def test_self_reference(self) -> None:
        class Mirror:
            calls = 0

            def render_content(self):
                self.calls += 1
                return ["(", self, ")"]

        mirror = Mirror()
        env = make_env({"page": "{%= m %}"})
        assert await env.render("page", {"m": mirror}) == "(" + INFINITE_LOOP_MARKER + ")"
        assert mirror.calls == 1

    @pytest.mark.asyncio
    async def test_mutual_reference(self) -> None:
        class Node:
            def __init__(self, label):
                self.label = label
                self.other = None
                self.calls = 0

            def render_content(self):
                self.calls += 1
                return [self.label, self.other]

        a, b = Node("a"), Node("b")
        a.other, b.other = b, a
        env = make_env({"page": "{%= a %}|{%= b %}"})
        html = await env.render("page", {"a": a, "b": b})
        assert INFINITE_LOOP_MARKER in html
        assert a.calls == 1
        assert b.calls == 1

    @pytest.mark.asyncio
    async def test_element_variable(self) -> None:
        env = make_env({"page": "{%= el %}"})
        assert await env.render("page", {"el": Element("br")}) == "<br>"

    @pytest.mark.asyncio
    async def test_element_inside_itself(self) -> None:
        el = Element("div")
        el.append("x", el)
        env = make_env({"page": "{%= el %}"})
        assert await env.render("page", {"el": el}) == "<div>x" + INFINITE_LOOP_MARKER + "</div>"

    @pytest.mark.asyncio
    async def test_element_inside_itself_with_pending_content(self) -> None:
        class Widget:
            def render_content(self):
                return "w"

        outer, inner = Element("div"), Element("p")
        inner.append(Widget(), outer)
        outer.append(inner)
        env = make_env({"page": "{%= el %}"})
        html = await env.render("page", {"el": outer})
        assert html == "<div><p>w" + INFINITE_LOOP_MARKER + "</p></div>"
