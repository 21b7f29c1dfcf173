"""Compiled template objects and the runtime helpers they use."""

from talon.template.core import Template

__all__ = ["Template"]
