"""AST nodes produced by the talon parser."""

from talon.nodes.base import Node
from talon.nodes.code import Code, CodeBlock, CodeClause
from talon.nodes.output import Command, Data
from talon.nodes.structure import Branch, Break, Expression, Template

__all__ = [
    "Branch",
    "Break",
    "Code",
    "CodeBlock",
    "CodeClause",
    "Command",
    "Data",
    "Expression",
    "Node",
    "Template",
]
