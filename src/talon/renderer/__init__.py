"""Render passes: Renderer, block buffers and placeholders."""

from talon.renderer.block_buffer import INFINITE_LOOP_MARKER, BlockBuffer, BlockOptions
from talon.renderer.core import Renderer, RenderState, TemplateFrame
from talon.renderer.placeholders import (
    AssignPlaceholder,
    DeferredPlaceholder,
    Placeholder,
    TemplatePlaceholder,
)

__all__ = [
    "INFINITE_LOOP_MARKER",
    "AssignPlaceholder",
    "BlockBuffer",
    "BlockOptions",
    "DeferredPlaceholder",
    "Placeholder",
    "RenderState",
    "Renderer",
    "TemplateFrame",
    "TemplatePlaceholder",
]
