"""MCP tool handlers for micropub-sync.

This package contains MCP tool implementations that wrap the reconciler and
the pipelines with async handlers and structured error responses.
"""

from .content import CONTENT_SPECS
from .errors import build_error_response, translate_error
from .media import MEDIA_SPECS
from .registry import ToolRegistry, ToolSpec

ALL_SPECS: list[ToolSpec] = CONTENT_SPECS + MEDIA_SPECS

__all__ = [
    "build_error_response",
    "translate_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "CONTENT_SPECS",
    "MEDIA_SPECS",
]
