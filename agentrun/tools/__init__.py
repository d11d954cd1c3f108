"""
Tools module.

- Tool / ToolOutput: Abstract tool and its result
- FunctionTool / tool: Wrap plain functions
- ToolRegistry: Name-keyed tool lookup
"""

from .base import Tool, ToolOutput
from .builtin import BUILTIN_TOOLS, calculator, current_time
from .decorator import tool
from .local import FunctionTool
from .registry import ToolRegistry


def default_registry() -> ToolRegistry:
    """Registry preloaded with the built-in tools."""
    return ToolRegistry(BUILTIN_TOOLS)


__all__ = [
    "BUILTIN_TOOLS",
    "FunctionTool",
    "Tool",
    "ToolOutput",
    "ToolRegistry",
    "calculator",
    "current_time",
    "default_registry",
    "tool",
]
