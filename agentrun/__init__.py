"""
agentrun - a bounded, retrying LLM agent loop.

    from agentrun import AgentExecutionEngine, AgentConfiguration, ToolRegistry
    from agentrun.providers import OpenAIRoundTrip
    from agentrun.tools import calculator

    engine = AgentExecutionEngine(OpenAIRoundTrip(), ToolRegistry([calculator]))
    async for step in engine.run("What is 2+2?"):
        print(step)
"""

from agentrun.domain import (
    AgentConfiguration,
    AgentStep,
    FinalResponseStep,
    LoopPhase,
    Message,
    StepKind,
    TerminationReason,
    ThinkingStep,
    ToolCallStep,
    ToolResultStep,
)
from agentrun.engine import AgentExecutionEngine
from agentrun.errors import AgentError, ProviderError
from agentrun.retry import RetryConfiguration, RetryingRoundTrip, RetryPolicy
from agentrun.runtime import AgentExecutionController, RunStatus
from agentrun.tools import FunctionTool, Tool, ToolRegistry, tool

__version__ = "0.1.0"

__all__ = [
    "AgentConfiguration",
    "AgentError",
    "AgentExecutionController",
    "AgentExecutionEngine",
    "AgentStep",
    "FinalResponseStep",
    "FunctionTool",
    "LoopPhase",
    "Message",
    "ProviderError",
    "RetryConfiguration",
    "RetryPolicy",
    "RetryingRoundTrip",
    "RunStatus",
    "StepKind",
    "TerminationReason",
    "ThinkingStep",
    "Tool",
    "ToolCallStep",
    "ToolRegistry",
    "ToolResultStep",
    "tool",
]
