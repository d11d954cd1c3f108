"""
Domain module - Pure domain models with no runtime dependencies.
"""

# Messages
from .messages import (
    Message,
    MessageContent,
    MessageRole,
    ProviderRequest,
    ProviderResponse,
    StopReason,
    TextContent,
    TokenUsage,
    ToolChoice,
    ToolDefinition,
    ToolResultContent,
    ToolUseContent,
)

# Steps
from .step import (
    AgentStep,
    FinalResponseStep,
    StepKind,
    ThinkingStep,
    ToolCallStep,
    ToolResultStep,
    agent_step_adapter,
)

# Phases
from .phase import (
    AwaitingModel,
    ExecutingTools,
    LoopPhase,
    Retrying,
    Terminated,
    TerminationReason,
    is_terminal,
)

# Configuration
from .config import AgentConfiguration

__all__ = [
    # Messages
    "Message",
    "MessageContent",
    "MessageRole",
    "ProviderRequest",
    "ProviderResponse",
    "StopReason",
    "TextContent",
    "TokenUsage",
    "ToolChoice",
    "ToolDefinition",
    "ToolResultContent",
    "ToolUseContent",
    # Steps
    "AgentStep",
    "FinalResponseStep",
    "StepKind",
    "ThinkingStep",
    "ToolCallStep",
    "ToolResultStep",
    "agent_step_adapter",
    # Phases
    "AwaitingModel",
    "ExecutingTools",
    "LoopPhase",
    "Retrying",
    "Terminated",
    "TerminationReason",
    "is_terminal",
    # Configuration
    "AgentConfiguration",
]
