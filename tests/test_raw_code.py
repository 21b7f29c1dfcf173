"""Tests for raw Python tags and their variable scope."""

from __future__ import annotations

import pytest

from talon import Environment
from talon.environment.exceptions import ErrorCode, TemplateRuntimeError, TemplateSyntaxError


def render(source: str, **variables) -> str:
    return Environment().from_string(source, name="raw").render(variables)


class TestStatements:
    """Single-tag statements."""

    def test_assignment(self) -> None:
        assert render("<% x = 5 %>{%= x %}") == "5"

    def test_print_shorthand(self) -> None:
        assert render("<%= 1 + 1 %>") == "2"

    def test_augmented_assignment(self) -> None:
        assert render("<% total += 2 %><%= total %>", total=1) == "3"

    def test_multi_line_tag(self) -> None:
        assert render("<%\nx = 1\ny = x + 1\n%>{%= y %}") == "2"

    def test_code_tags_keep_newlines(self) -> None:
        assert render("<% x = 1 %>\n{%= x %}") == "\n1"

    def test_trim_marker(self) -> None:
        assert render("<% x = 1 -%>\n{%= x %}") == "1"

    def test_visible_in_structured_bodies(self) -> None:
        source = '<% sep = "-" %>{% each items as i %}{%= sep %}{%= i %}{% /each %}'
        assert render(source, items=[1, 2]) == "-1-2"

    def test_comprehension(self) -> None:
        assert render("<% squares = [n * n for n in nums] %>{%= squares %}", nums=[1, 2]) == "[1, 4]"

    def test_lambda_reads_scope_at_call_time(self) -> None:
        assert render("<% f = lambda a: a + bonus %><% bonus = 10 %>{%= f(1) %}") == "11"

    def test_walrus(self) -> None:
        source = "<% if (n := len(items)) > 1: %>{%= n %}<% end %>"
        assert render(source, items=[1, 2, 3]) == "3"


class TestDefinitions:
    """def, class and import bind into the template scope."""

    def test_function(self) -> None:
        assert render("<% def double(v): return v * 2 %>{%= double(4) %}") == "8"

    def test_class(self) -> None:
        assert render("<% class Point: x = 1 %>{%= Point.x %}") == "1"

    def test_import(self) -> None:
        assert render("<% import math %>{%= math.floor(2.5) %}") == "2"

    def test_from_import(self) -> None:
        assert render("<% from html import escape as esc %><%= esc('<') %>") == "&lt;"


class TestCompoundBlocks:
    """Statements ending in ':' span tags until <% end %>."""

    def test_for(self) -> None:
        assert render("<% for i in range(3): %>{%= i %}<% end %>") == "012"

    def test_for_else(self) -> None:
        assert render("<% for i in items: %>{%= i %}<% else: %>done<% end %>", items=[1]) == "1done"

    def test_if_elif_else(self) -> None:
        source = "<% if n > 1: %>big<% elif n == 1: %>one<% else: %>none<% end %>"
        assert render(source, n=2) == "big"
        assert render(source, n=1) == "one"
        assert render(source, n=0) == "none"

    def test_while(self) -> None:
        assert render("<% i = 0 %><% while i < 3: %><% i += 1 %>{%= i %}<% end %>") == "123"

    def test_try_except(self) -> None:
        source = "<% try: %><% x = 1 / 0 %><% except ZeroDivisionError as err: %>caught<% end %>"
        assert render(source) == "caught"

    def test_except_name_is_bound(self) -> None:
        source = "<% try: %><% int('x') %><% except ValueError as err: %>{%= err.args.0 %}<% end %>"
        assert "invalid literal" in render(source)

    def test_nested_with_expressions(self) -> None:
        source = "<% for row in rows: %>{% each row as c %}{%= c %}{% /each %};<% end %>"
        assert render(source, rows=[[1, 2], [3]]) == "12;3;"

    def test_unclosed_block(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            Environment().from_string("<% for i in x: %>a")
        assert exc_info.value.code is ErrorCode.UNCLOSED_BLOCK

    def test_end_without_block(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="without a matching raw block"):
            Environment().from_string("a<% end %>")

    def test_continuation_of_wrong_block(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="cannot continue"):
            Environment().from_string("<% while x: %>a<% elif y: %>b<% end %>")


class TestNameResolution:
    """Variables first, then helpers, renderer members and builtins."""

    def test_renderer_member(self) -> None:
        assert render('<%= get_id("x") %><%= get_id("x") %>') == "hx-0hx-1"

    def test_variable_shadows_renderer_member(self) -> None:
        assert render("<%= get_id() %>", get_id=lambda: "mine") == "mine"

    def test_builtin(self) -> None:
        assert render("<%= max(items) %>", items=[3, 9, 2]) == "9"

    def test_private_renderer_members_hidden(self) -> None:
        with pytest.raises(TemplateRuntimeError, match="_frames"):
            render("<%= _frames %>")

    def test_undefined_name(self) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            render("line one\n<% nothing_here() %>")
        err = exc_info.value
        assert "NameError" in err.message
        assert err.lineno == 2
        assert err.template_name == "raw"
        assert err.suggestion is not None


class TestInvalidCode:
    """Python syntax errors are reported at template lines."""

    def test_syntax_error(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            Environment().from_string("ok\n\n<% x = = 1 %>", name="bad")
        err = exc_info.value
        assert err.code is ErrorCode.INVALID_CODE
        assert err.lineno == 3
        assert err.name == "bad"

    def test_syntax_error_in_block_header(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            Environment().from_string("a\n<% if x ==: %>b<% end %>")
        assert exc_info.value.lineno == 2
