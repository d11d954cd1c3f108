"""
AgentStep - the externally observable output of the agent loop.

A run yields ThinkingStep / ToolCallStep / ToolResultStep values and ends
with exactly one FinalResponseStep, or raises an AgentError instead.

    async for step in engine.run("What is 2+2?"):
        match step.kind:
            case StepKind.THINKING: ...
            case StepKind.TOOL_CALL: ...
            case StepKind.TOOL_RESULT: ...
            case StepKind.FINAL_RESPONSE: ...
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class StepKind(str, Enum):
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    FINAL_RESPONSE = "final_response"


class ThinkingStep(BaseModel):
    """Model prose without a final answer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StepKind.THINKING] = StepKind.THINKING
    text: str


class ToolCallStep(BaseModel):
    """The model requested one tool invocation."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StepKind.TOOL_CALL] = StepKind.TOOL_CALL
    id: str
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict[str, Any]:
        if not self.arguments.strip():
            return {}
        return json.loads(self.arguments)


class ToolResultStep(BaseModel):
    """Result of executing a ToolCallStep with the same id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StepKind.TOOL_RESULT] = StepKind.TOOL_RESULT
    id: str
    name: str
    output: str
    is_error: bool = False


class FinalResponseStep(BaseModel):
    """Terminal step carrying the decoded, schema-validated output."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal[StepKind.FINAL_RESPONSE] = StepKind.FINAL_RESPONSE
    output: Any


AgentStep = Annotated[
    Union[ThinkingStep, ToolCallStep, ToolResultStep, FinalResponseStep],
    Field(discriminator="kind"),
]

agent_step_adapter: TypeAdapter[AgentStep] = TypeAdapter(AgentStep)


__all__ = [
    "AgentStep",
    "FinalResponseStep",
    "StepKind",
    "ThinkingStep",
    "ToolCallStep",
    "ToolResultStep",
    "agent_step_adapter",
]
