"""
Tool Registry - name-keyed lookup of the tools offered to a run.

Provides:
- Registration of Tool instances or plain functions
- Lookup by name (None for unknown names)
- Tool definitions for provider requests
"""

from typing import Callable, Iterable, Iterator

from agentrun.domain import ToolDefinition
from agentrun.tools.base import Tool
from agentrun.tools.local import FunctionTool
from agentrun.utils.logging import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """
    Central registry for the tools available to an agent.

    Examples:
        >>> registry = ToolRegistry([calculator])
        >>> registry.register(my_function)
        >>> registry.lookup("calculator")
        FunctionTool(name='calculator')
    """

    def __init__(self, tools: Iterable[Tool | Callable] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for item in tools or ():
            self.register(item)

    def register(self, item: Tool | Callable, name: str | None = None) -> Tool:
        """Register a Tool, or wrap and register a plain function."""
        if isinstance(item, Tool):
            tool = item
        elif callable(item):
            tool = FunctionTool(item, name=name)
        else:
            raise TypeError(f"Cannot register {type(item).__name__} as a tool")

        if tool.name in self._tools:
            logger.warning("tool_overridden", tool_name=tool.name)
        self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name)
        return tool

    def unregister(self, name: str) -> bool:
        """Remove a tool. Returns False when it was not registered."""
        if name in self._tools:
            del self._tools[name]
            logger.debug("tool_unregistered", tool_name=name)
            return True
        return False

    def lookup(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        """Tool definitions in registration order."""
        return [tool.to_definition() for tool in self._tools.values()]

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={self.names})"


__all__ = ["ToolRegistry"]
