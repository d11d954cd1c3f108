"""
LoopPhase - exactly one phase of a run is active at a time.

    AwaitingModel ──tool calls──▶ ExecutingTools ──continue──▶ AwaitingModel
         │  ▲                            │
         ▼  │ (round-trip retry)         ▼ stop / cancel / error
       Retrying                      Terminated(reason)

Terminated is absorbing.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .step import ToolCallStep


class TerminationReason(str, Enum):
    COMPLETED = "completed"
    MAX_STEPS_EXCEEDED = "max_steps_exceeded"
    DUPLICATE_CALLS_DETECTED = "duplicate_calls_detected"
    TOOL_ERROR = "tool_error"
    PROVIDER_ERROR = "provider_error"
    OUTPUT_DECODING_FAILED = "output_decoding_failed"
    CANCELLED = "cancelled"


class AwaitingModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["awaiting_model"] = "awaiting_model"


class ExecutingTools(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["executing_tools"] = "executing_tools"
    pending_calls: tuple[ToolCallStep, ...] = ()


class Retrying(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["retrying"] = "retrying"
    attempt: int
    next_delay: float


class Terminated(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["terminated"] = "terminated"
    reason: TerminationReason


LoopPhase = Annotated[
    Union[AwaitingModel, ExecutingTools, Retrying, Terminated],
    Field(discriminator="name"),
]


def is_terminal(phase: LoopPhase) -> bool:
    return isinstance(phase, Terminated)


__all__ = [
    "AwaitingModel",
    "ExecutingTools",
    "LoopPhase",
    "Retrying",
    "Terminated",
    "TerminationReason",
    "is_terminal",
]
