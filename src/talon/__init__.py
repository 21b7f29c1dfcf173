"""talon: asynchronous block-based HTML template engine.

Templates mix two tag syntaxes with literal HTML:

- ``{% ... %}`` structured expressions: ``{% if %}``, ``{% each %}``,
  ``{% with %}``, ``{% macro %}``, ``{%= value %}``...
- ``<% ... %>`` raw Python and commands: ``<% start("main") %>``,
  ``<%= value %>``, ``<% for item in items: %>...<% end %>``

Quickstart:
    >>> from talon import Environment
    >>> env = Environment()
    >>> env.from_string("Hello, {%= name %}!").render(name="World")
    'Hello, World!'

Layouts:
    >>> from talon import DictLoader, Environment
    >>> env = Environment(loader=DictLoader({
    ...     "layout": "<body><% assign('main') %></body>",
    ...     "page": "<% expands('layout') %><% start('main') %>Hi<% end() %>",
    ... }))
    >>> html = env.render_sync("page")

Architecture:
Template Source → dissect() → Parser → talon AST → Compiler → Python AST → exec()

A render pass executes the compiled function synchronously, routing
output into named blocks. Templates pulled in with ``implement`` or
``partial`` run afterwards, in series; placeholders (assigns, lazy
includes, renderable objects) resolve concurrently while the blocks are
assembled into the final HTML.

"""

from talon._types import Segment, SegmentType, TagSyntax, Token, TokenType
from talon.dom import DocumentEnvironment, Element, ServerDocument
from talon.environment import (
    AsyncContentError,
    ChoiceLoader,
    DictLoader,
    Environment,
    ErrorCode,
    FileSystemLoader,
    FunctionLoader,
    PrefixLoader,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    build_source_snippet,
)
from talon.expressions import Branch, Expression, ExpressionRegistry
from talon.helper import Helper
from talon.lexer import dissect
from talon.render_context import RenderContext, get_render_context, render_context
from talon.renderer import BlockBuffer, BlockOptions, Renderer, RenderState
from talon.template import Template
from talon.utils.html import Markup, escape

__version__ = "0.1.0"

__all__ = [
    "AsyncContentError",
    "BlockBuffer",
    "BlockOptions",
    "Branch",
    "ChoiceLoader",
    "DictLoader",
    "DocumentEnvironment",
    "Element",
    "Environment",
    "ErrorCode",
    "Expression",
    "ExpressionRegistry",
    "FileSystemLoader",
    "FunctionLoader",
    "Helper",
    "Markup",
    "PrefixLoader",
    "RenderContext",
    "RenderState",
    "Renderer",
    "Segment",
    "SegmentType",
    "ServerDocument",
    "SourceSnippet",
    "TagSyntax",
    "Template",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "Token",
    "TokenType",
    "__version__",
    "dissect",
    "escape",
    "get_render_context",
    "render_context",
]
