from leo.tools.base import Tool, ToolDefinition
from leo.tools.registry import ToolRegistry

__all__ = ["Tool", "ToolDefinition", "ToolRegistry"]
