"""
Engine module - the agent loop and its collaborators.

- AgentExecutionEngine: Loop driver
- AgentContext: Per-run mutable state
- TerminationPolicy: Stop decisions after each tool batch
- ToolExecutor: Concurrent tool execution
"""

from .context import AgentContext, canonicalize_arguments
from .termination import (
    CompositeTerminationPolicy,
    Continue,
    DuplicateDetectionPolicy,
    StandardTerminationPolicy,
    Stop,
    TerminationPolicy,
)
from .tool_executor import ToolExecution, ToolExecutor
from .engine import FINAL_OUTPUT_REQUEST, AgentExecutionEngine

__all__ = [
    "AgentContext",
    "AgentExecutionEngine",
    "CompositeTerminationPolicy",
    "Continue",
    "DuplicateDetectionPolicy",
    "FINAL_OUTPUT_REQUEST",
    "StandardTerminationPolicy",
    "Stop",
    "TerminationPolicy",
    "ToolExecution",
    "ToolExecutor",
    "canonicalize_arguments",
]
