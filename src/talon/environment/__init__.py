"""Environment, loaders, cache and exceptions."""

from talon.environment.exceptions import (
    AsyncContentError,
    ErrorCode,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    build_source_snippet,
)
from talon.environment.loaders import (
    ChoiceLoader,
    DictLoader,
    FileSystemLoader,
    FunctionLoader,
    Loader,
    PrefixLoader,
)
from talon.environment.cache import TemplateCache
from talon.environment.registry import BUILTIN_COMMANDS, CommandRegistry
from talon.environment.core import Environment

__all__ = [
    "BUILTIN_COMMANDS",
    "AsyncContentError",
    "ChoiceLoader",
    "CommandRegistry",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "FunctionLoader",
    "Loader",
    "PrefixLoader",
    "SourceSnippet",
    "TemplateCache",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "build_source_snippet",
]
