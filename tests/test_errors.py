"""Tests for error codes, locations and snippets.

Syntax errors are raised by ``from_string`` and cached by ``compile``;
runtime errors name the template and the last line reached, with the
chain of calling templates.
"""

from __future__ import annotations

import logging

import pytest

from talon import DictLoader, Environment
from talon.environment import terminal
from talon.environment.exceptions import (
    AsyncContentError,
    ErrorCode,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    build_source_snippet,
    format_template_stack,
)
from talon.parser.errors import ParseError


@pytest.fixture(autouse=True)
def _plain_output(monkeypatch):
    monkeypatch.setattr(terminal, "_USE_COLORS", False)


def syntax_error(source: str) -> TemplateSyntaxError:
    with pytest.raises(TemplateSyntaxError) as exc_info:
        Environment().from_string(source, name="page")
    return exc_info.value


class TestErrorCode:
    """Codes and categories."""

    @pytest.mark.parametrize(
        ("code", "category"),
        [
            (ErrorCode.UNCLOSED_TAG, "lexer"),
            (ErrorCode.UNKNOWN_CLOSE, "parser"),
            (ErrorCode.INCLUDE_DEPTH, "runtime"),
            (ErrorCode.TEMPLATE_NOT_FOUND, "template"),
        ],
    )
    def test_category(self, code: ErrorCode, category: str) -> None:
        assert code.category == category

    def test_class_defaults(self) -> None:
        assert TemplateNotFoundError("x").code is ErrorCode.TEMPLATE_NOT_FOUND
        assert AsyncContentError("x").code is ErrorCode.ASYNC_CONTENT


class TestSyntaxErrors:
    """Parser errors point at the offending tag."""

    def test_unterminated_tag(self) -> None:
        err = syntax_error("a\nb <% x = 1")
        assert err.code is ErrorCode.UNCLOSED_TAG
        assert err.lineno == 2

    def test_unclosed_expression(self) -> None:
        err = syntax_error("{% if x %}yes")
        assert isinstance(err, ParseError)
        assert err.code is ErrorCode.UNCLOSED_BLOCK
        assert err.message == "Unclosed 'if' tag"
        assert err.suggestion == "Add {% /if %} to close it"

    def test_close_at_top_level(self) -> None:
        err = syntax_error("text{% /each %}")
        assert err.code is ErrorCode.UNKNOWN_CLOSE
        assert "at top level" in err.message

    def test_wrong_close(self) -> None:
        err = syntax_error("{% if x %}{% /each %}")
        assert err.message == "Unexpected closing tag '/each' inside 'if'"

    def test_else_cannot_be_closed(self) -> None:
        err = syntax_error("{% if x %}a{% else %}b{% /else %}{% /if %}")
        assert err.code is ErrorCode.UNKNOWN_CLOSE

    def test_clause_outside_expression(self) -> None:
        err = syntax_error("{% else %}")
        assert "outside any open expression" in err.message

    def test_clause_not_accepted(self) -> None:
        err = syntax_error("{% if x %}{% none %}{% /if %}")
        assert err.message == "'none' is not allowed inside 'if'"

    def test_duplicate_clause(self) -> None:
        err = syntax_error("{% if x %}a{% else %}b{% else %}c{% /if %}")
        assert "Duplicate 'else'" in err.message

    def test_invalid_expression(self) -> None:
        err = syntax_error("{% if (a %}x{% /if %}")
        assert err.code is ErrorCode.INVALID_EXPRESSION

    def test_location_and_snippet(self) -> None:
        err = syntax_error("one\n{% /if %}")
        assert err.location == "page:2"
        assert "  2 | {% /if %}" in str(err)

    def test_format_compact(self) -> None:
        err = syntax_error("{% if x %}")
        compact = err.format_compact()
        assert compact.startswith("T-PAR-002: Unclosed 'if' tag")
        assert "--> page:1" in compact

    def test_suggestion_in_message(self) -> None:
        err = syntax_error("{% if x %}")
        assert "Suggestion: Add {% /if %} to close it" in str(err)


class TestCompileErrorCaching:
    """Environment.compile logs syntax errors and defers them to render time."""

    def test_error_raised_when_rendered(self, caplog) -> None:
        env = Environment(loader=DictLoader({"bad": "{% if x %}"}))
        with caplog.at_level(logging.ERROR, logger="talon.environment.core"):
            template = env.get_template("bad")
        assert template.compile_error is not None
        assert "Failed to compile template 'bad'" in caplog.text
        assert env.get_template("bad") is template

        with pytest.raises(TemplateSyntaxError) as exc_info:
            env.render_sync("bad")
        assert exc_info.value is template.compile_error

    @pytest.mark.parametrize(
        "source",
        [
            "<%= ) or (1 %>",
            "<% include ) + (1 %>",
            '{%= "\\N" %}',
            "{% if x eq '\\x' %}y{% /if %}",
        ],
    )
    def test_malformed_tags_are_logged(self, caplog, source) -> None:
        env = Environment()
        with caplog.at_level(logging.ERROR, logger="talon.environment.core"):
            template = env.compile("page", source)
        assert isinstance(template.compile_error, TemplateSyntaxError)
        assert "Failed to compile template 'page'" in caplog.text
        with pytest.raises(TemplateSyntaxError):
            template.render()

    def test_command_arguments_must_form_a_call(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            Environment().from_string("a\n<%= ) or (1 %>", name="page")
        assert exc_info.value.code is ErrorCode.INVALID_CODE
        assert exc_info.value.lineno == 2

    def test_failed_template_repr(self) -> None:
        env = Environment()
        assert repr(env.compile("bad", "{% /if %}")) == "<Template 'bad' (failed)>"


class TestRuntimeErrors:
    """Exceptions from template code are wrapped with context."""

    def test_location(self) -> None:
        env = Environment()
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.from_string("a\nb\n{%= 1 / 0 %}\nc", name="page").render()
        err = exc_info.value
        assert err.message.startswith("ZeroDivisionError: division by zero")
        assert err.template_name == "page"
        assert err.lineno == 3
        assert err.source_snippet is not None
        assert err.source_snippet.error_line == 3
        assert ">  3 | {%= 1 / 0 %}" in str(err)

    def test_cause_is_kept(self) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            Environment().from_string("<% int('x') %>").render()
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_template_stack(self) -> None:
        env = Environment(
            loader=DictLoader({"page": "a\n<% implement('part') %>", "part": "x\n{%= 1 / 0 %}"})
        )
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_sync("page")
        err = exc_info.value
        assert err.template_name == "part"
        assert err.lineno == 2
        assert err.template_stack == [("page", 2)]
        assert "page:2" in str(err)

    def test_format_compact(self) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            Environment().from_string("{%= 1 / 0 %}", name="p").render()
        compact = exc_info.value.format_compact()
        assert compact.startswith("T-RUN-001: ZeroDivisionError")
        assert "Location: p:1" in compact

    def test_message_without_details(self) -> None:
        with pytest.raises(TemplateRuntimeError, match=r"KeyError: 'k'"):
            Environment().from_string("<% {}['k'] %>").render()


class TestNotFound:
    """Missing templates."""

    def test_close_match_suggested(self) -> None:
        env = Environment(loader=DictLoader({"layout": ""}))
        with pytest.raises(TemplateNotFoundError, match="Did you mean 'layout'"):
            env.get_template("layuot")

    def test_available_listed(self) -> None:
        env = Environment(loader=DictLoader({"a": "", "b": ""}))
        with pytest.raises(TemplateNotFoundError, match="Available: a, b"):
            env.get_template("zzz")

    def test_no_loader(self) -> None:
        with pytest.raises(TemplateNotFoundError, match="no loader"):
            Environment().get_template("page")

    def test_format_compact_prefixes_code(self) -> None:
        assert TemplateNotFoundError("gone").format_compact() == "T-TPL-001: gone"


class TestSnippets:
    """Source snippet helpers."""

    def test_context_window(self) -> None:
        source = "\n".join(f"line {n}" for n in range(1, 11))
        snippet = build_source_snippet(source, 5, context_lines=1)
        assert snippet.lines == ((4, "line 4"), (5, "line 5"), (6, "line 6"))

    def test_window_clipped_at_edges(self) -> None:
        snippet = build_source_snippet("a\nb", 1)
        assert [n for n, _ in snippet.lines] == [1, 2]

    def test_caret(self) -> None:
        text = build_source_snippet("abc", 1, column=2).format()
        assert text.splitlines()[-2] == "   |   ^"

    def test_template_stack_format(self) -> None:
        assert format_template_stack([]) == ""
        assert format_template_stack([("base", 3), ("page", 12)]) == (
            "Template stack:\n  • base:3\n  • page:12"
        )
