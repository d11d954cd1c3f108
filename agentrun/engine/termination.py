"""
Termination policies - decide after each tool batch whether the loop goes on.

    policy = TerminationPolicy.from_configuration(config)
    decision = policy.decide(context)
    if isinstance(decision, Stop):
        raise decision.to_error()

Policies are consulted in order; the first Stop wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence, Union

from agentrun.domain import AgentConfiguration, TerminationReason
from agentrun.engine.context import AgentContext
from agentrun.errors import (
    AgentError,
    DuplicateToolCallError,
    MaxStepsExceededError,
    ToolCallLimitError,
)


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class Stop:
    reason: TerminationReason
    message: str
    tool_name: str | None = None
    count: int | None = None
    limit: int | None = None
    per_tool: bool = False

    def to_error(self, **kwargs) -> AgentError:
        """Matching AgentError subclass for this decision."""
        if self.reason is TerminationReason.MAX_STEPS_EXCEEDED:
            return MaxStepsExceededError(self.limit or 0, **kwargs)
        if self.per_tool:
            return ToolCallLimitError(self.tool_name or "", self.count or 0, **kwargs)
        return DuplicateToolCallError(
            self.tool_name or "", self.count or 0, message=self.message, **kwargs
        )


Decision = Union[Continue, Stop]

CONTINUE = Continue()


class TerminationPolicy(ABC):
    @abstractmethod
    def decide(self, context: AgentContext) -> Decision:
        """Inspect the context after a tool batch."""

    @staticmethod
    def from_configuration(config: AgentConfiguration) -> "CompositeTerminationPolicy":
        """Duplicate detection first, then the step budget."""
        return CompositeTerminationPolicy(
            [
                DuplicateDetectionPolicy(
                    max_duplicates=config.max_duplicate_tool_calls,
                    max_calls_per_tool=config.max_tool_calls_per_tool,
                ),
                StandardTerminationPolicy(config.max_steps),
            ]
        )


class StandardTerminationPolicy(TerminationPolicy):
    """Stop once the step counter reaches max_steps."""

    def __init__(self, max_steps: int):
        self.max_steps = max_steps

    def decide(self, context: AgentContext) -> Decision:
        if context.step >= self.max_steps:
            return Stop(
                TerminationReason.MAX_STEPS_EXCEEDED,
                f"Agent exceeded maximum steps limit ({self.max_steps})",
                limit=self.max_steps,
            )
        return CONTINUE


class DuplicateDetectionPolicy(TerminationPolicy):
    """
    Stop when the agent looks stuck.

    Two independent checks:
    1. one (name, canonical arguments) pair seen more than max_duplicates times
    2. one tool called more than max_calls_per_tool times, any arguments
    """

    def __init__(self, max_duplicates: int = 2, max_calls_per_tool: int | None = 5):
        self.max_duplicates = max_duplicates
        self.max_calls_per_tool = max_calls_per_tool

    def decide(self, context: AgentContext) -> Decision:
        repeated = context.most_repeated_call()
        if repeated is not None:
            (name, _), count = repeated
            if count > self.max_duplicates:
                return Stop(
                    TerminationReason.DUPLICATE_CALLS_DETECTED,
                    f"Duplicate tool call detected: {name} called {count} times with same input",
                    tool_name=name,
                    count=count,
                    limit=self.max_duplicates,
                )

        if self.max_calls_per_tool is not None:
            busiest = context.most_called_tool()
            if busiest is not None:
                name, count = busiest
                if count > self.max_calls_per_tool:
                    return Stop(
                        TerminationReason.DUPLICATE_CALLS_DETECTED,
                        f"Tool call limit reached: {name} called {count} times total",
                        tool_name=name,
                        count=count,
                        limit=self.max_calls_per_tool,
                        per_tool=True,
                    )

        return CONTINUE


class CompositeTerminationPolicy(TerminationPolicy):
    def __init__(self, policies: Sequence[TerminationPolicy]):
        self.policies = list(policies)

    def decide(self, context: AgentContext) -> Decision:
        for policy in self.policies:
            decision = policy.decide(context)
            if isinstance(decision, Stop):
                return decision
        return CONTINUE


__all__ = [
    "CONTINUE",
    "CompositeTerminationPolicy",
    "Continue",
    "Decision",
    "DuplicateDetectionPolicy",
    "StandardTerminationPolicy",
    "Stop",
    "TerminationPolicy",
]
