"""
Vendor-neutral request/response models for one LLM round trip.

The conversation history is a list of Message objects whose contents are
ordered blocks (text, tool use, tool result). Provider adapters translate
these to and from their own wire formats.
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Conversation roles"""
    USER = "user"
    ASSISTANT = "assistant"


class ToolChoice(str, Enum):
    AUTO = "auto"
    NONE = "none"
    REQUIRED = "required"


class StopReason(str, Enum):
    """Why the model stopped generating"""
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolUseContent(BaseModel):
    """A tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    arguments: str = "{}"  # raw JSON text

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode arguments, returning an empty dict for blank input."""
        if not self.arguments.strip():
            return {}
        return json.loads(self.arguments)


class ToolResultContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    name: str
    content: str
    is_error: bool = False


MessageContent = Annotated[
    Union[TextContent, ToolUseContent, ToolResultContent],
    Field(discriminator="type"),
]

ResponseContent = Annotated[
    Union[TextContent, ToolUseContent],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """
    One conversation turn.

    Examples:
        Message.user("What is 2+2?")
        Message(role=MessageRole.ASSISTANT, contents=[
            TextContent(text="Let me calculate"),
            ToolUseContent(id="call_1", name="calculator",
                           arguments='{"expression": "2+2"}'),
        ])
    """

    role: MessageRole
    contents: list[MessageContent] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=MessageRole.USER, contents=[TextContent(text=text)])

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, contents=[TextContent(text=text)])

    @property
    def text(self) -> str:
        return "".join(c.text for c in self.contents if isinstance(c, TextContent))

    @property
    def tool_uses(self) -> list[ToolUseContent]:
        return [c for c in self.contents if isinstance(c, ToolUseContent)]

    @property
    def tool_results(self) -> list[ToolResultContent]:
        return [c for c in self.contents if isinstance(c, ToolResultContent)]


class ToolDefinition(BaseModel):
    """Tool description offered to the model, parameters as JSON Schema."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class ProviderRequest(BaseModel):
    """Everything a provider needs for one round trip."""

    messages: list[Message]
    tools: list[ToolDefinition] = Field(default_factory=list)
    tool_choice: ToolChoice | None = None
    response_schema: dict[str, Any] | None = None
    system_prompt: str | None = None


class ProviderResponse(BaseModel):
    """
    Standardized round-trip result.

    `content` keeps the model-authored order of text and tool-use blocks.
    """

    content: list[ResponseContent] = Field(default_factory=list)
    stop_reason: StopReason | None = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str | None = None

    @property
    def text_blocks(self) -> list[str]:
        return [c.text for c in self.content if isinstance(c, TextContent)]

    @property
    def tool_use_blocks(self) -> list[ToolUseContent]:
        return [c for c in self.content if isinstance(c, ToolUseContent)]

    @property
    def text(self) -> str:
        return "".join(self.text_blocks)

    def has_tool_calls(self) -> bool:
        return bool(self.tool_use_blocks)

    def to_message(self) -> Message:
        """Assistant turn for the history, dropping empty text blocks."""
        contents = [
            c for c in self.content if not (isinstance(c, TextContent) and not c.text)
        ]
        return Message(role=MessageRole.ASSISTANT, contents=contents)


__all__ = [
    "Message",
    "MessageContent",
    "MessageRole",
    "ProviderRequest",
    "ProviderResponse",
    "ResponseContent",
    "StopReason",
    "TextContent",
    "TokenUsage",
    "ToolChoice",
    "ToolDefinition",
    "ToolResultContent",
    "ToolUseContent",
]
