"""talon parser: segments to AST."""

from talon.parser.core import Parser
from talon.parser.errors import ParseError, TokenStreamError
from talon.parser.tokens import TagOptions, TokenStream

__all__ = ["ParseError", "Parser", "TagOptions", "TokenStream", "TokenStreamError"]
