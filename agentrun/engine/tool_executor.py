"""
Tool executor - run one step's tool calls concurrently.
"""

import asyncio
import time
from dataclasses import dataclass

from agentrun.domain import ToolCallStep, ToolResultStep
from agentrun.tools import ToolRegistry
from agentrun.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolExecution:
    """Outcome of one call: the step to emit, plus the exception if the tool raised."""

    result: ToolResultStep
    error: Exception | None = None
    duration: float = 0.0


class ToolExecutor:
    """Executes ToolCallSteps against a ToolRegistry."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def execute(self, call: ToolCallStep) -> ToolExecution:
        """
        Execute a single tool call.

        Argument problems and exceptions raised by the tool both become an
        `is_error` result; the exception is kept on the returned execution.
        """
        start_time = time.time()
        tool = self.registry.lookup(call.name)
        if tool is None:
            return ToolExecution(
                ToolResultStep(
                    id=call.id, name=call.name, output=f"Tool {call.name} not found", is_error=True
                )
            )

        try:
            logger.debug("executing_tool", tool_name=call.name, tool_call_id=call.id)
            output = await tool.run(call.arguments)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                "tool_execution_exception",
                tool_name=call.name,
                tool_call_id=call.id,
                error=str(e),
                exc_info=True,
            )
            return ToolExecution(
                ToolResultStep(
                    id=call.id,
                    name=call.name,
                    output=f"Tool execution failed: {e}",
                    is_error=True,
                ),
                error=e,
                duration=duration,
            )

        duration = time.time() - start_time
        logger.debug(
            "tool_execution_completed",
            tool_name=call.name,
            tool_call_id=call.id,
            is_error=output.is_error,
            duration=duration,
        )
        return ToolExecution(
            ToolResultStep(id=call.id, name=call.name, output=output.output, is_error=output.is_error),
            duration=duration,
        )

    async def execute_batch(self, calls: list[ToolCallStep]) -> list[ToolExecution]:
        """
        Execute multiple tool calls in parallel.

        Results are returned in call order once every call has finished.
        """
        return list(await asyncio.gather(*(self.execute(call) for call in calls)))


__all__ = ["ToolExecution", "ToolExecutor"]
