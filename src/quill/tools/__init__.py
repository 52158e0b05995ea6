"""Tools package for Quill."""

from .dispatcher import TOOL_CANCELLED, TOOL_NOT_FOUND, ToolDispatcher
from .edit_engine import EditInstruction, EditMode, apply_edit
from .fs import build_file_registry
from .registry import ToolDefinition, ToolRegistry

__all__ = [
    "TOOL_CANCELLED",
    "TOOL_NOT_FOUND",
    "EditInstruction",
    "EditMode",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolRegistry",
    "apply_edit",
    "build_file_registry",
]
