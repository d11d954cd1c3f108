"""
AgentContext - mutable state of one agent run.

Owned by a single engine run and mutated only by it. Discarded when the run
ends; a resumed run seeds a fresh context from the prior message history.
"""

import json
from collections import Counter

from agentrun.domain import (
    AgentConfiguration,
    AwaitingModel,
    LoopPhase,
    Message,
    TokenUsage,
    ToolCallStep,
)


def canonicalize_arguments(arguments: str) -> str:
    """
    Canonical form of a JSON argument string for duplicate detection.

    Valid JSON is re-serialized with sorted keys and compact separators, so
    '{"b": 1, "a": 2}' and '{"a":2,"b":1}' compare equal. Anything else is
    compared by its stripped raw text.
    """
    text = arguments.strip()
    if not text:
        return "{}"
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return text
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class AgentContext:
    """
    Run state: history, step counter, call trackers, usage and phase.

    Attributes:
        config: Configuration the run was started with
        messages: Ordered conversation history, append-only within a run
        step: Completed model round trips
        duplicate_counts: Multiset keyed by (tool_name, canonical_arguments)
        tool_counts: Total calls per tool name
        usage: Accumulated token usage
        phase: Current loop phase
        output_requests: Final-output requests that failed to decode
        structured_output: Whether the next request asks for the final schema
    """

    def __init__(
        self,
        config: AgentConfiguration,
        messages: list[Message] | None = None,
    ):
        self.config = config
        self.messages: list[Message] = list(messages or [])
        self.step = 0
        self.duplicate_counts: Counter[tuple[str, str]] = Counter()
        self.tool_counts: Counter[str] = Counter()
        self.usage = TokenUsage()
        self.phase: LoopPhase = AwaitingModel()
        self.output_requests = 0
        self.structured_output = False

    @property
    def remaining_steps(self) -> int:
        return max(0, self.config.max_steps - self.step)

    @property
    def step_budget_exhausted(self) -> bool:
        return self.step >= self.config.max_steps

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def record_round_trip(self, usage: TokenUsage) -> None:
        self.step += 1
        self.usage = self.usage + usage

    def record_tool_calls(self, calls: list[ToolCallStep]) -> None:
        for call in calls:
            self.duplicate_counts[(call.name, canonicalize_arguments(call.arguments))] += 1
            self.tool_counts[call.name] += 1

    def most_repeated_call(self) -> tuple[tuple[str, str], int] | None:
        if not self.duplicate_counts:
            return None
        return self.duplicate_counts.most_common(1)[0]

    def most_called_tool(self) -> tuple[str, int] | None:
        if not self.tool_counts:
            return None
        return self.tool_counts.most_common(1)[0]

    def __repr__(self) -> str:
        return (
            f"AgentContext(step={self.step}, messages={len(self.messages)}, "
            f"phase={self.phase.name})"
        )


__all__ = ["AgentContext", "canonicalize_arguments"]
