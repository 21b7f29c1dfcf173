"""talon compiler: template AST to Python code objects."""

from talon.compiler.core import CompiledTemplate, Compiler

__all__ = ["CompiledTemplate", "Compiler"]
