"""Element shim and document environments."""

from talon.dom.document import DocumentEnvironment, ServerDocument
from talon.dom.element import PRIORITY_ATTRIBUTES, Element

__all__ = ["PRIORITY_ATTRIBUTES", "DocumentEnvironment", "Element", "ServerDocument"]
