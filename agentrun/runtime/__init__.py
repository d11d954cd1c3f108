"""
Runtime module - cancellation, step streaming and the run controller.
"""

from .control import AbortSignal
from .wire import Wire
from .controller import AgentExecutionController, EngineFactory, RunStatus

__all__ = [
    "AbortSignal",
    "AgentExecutionController",
    "EngineFactory",
    "RunStatus",
    "Wire",
]
