"""
Anthropic round trip - Messages API.
"""

import json
import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
)

from agentrun.domain import (
    Message,
    MessageRole,
    ProviderRequest,
    ProviderResponse,
    StopReason,
    TextContent,
    TokenUsage,
    ToolChoice,
    ToolResultContent,
    ToolUseContent,
)
from agentrun.errors import (
    FatalProviderError,
    ProviderError,
    ServerError,
    classify_exception,
    classify_status,
)
from agentrun.providers.base import ProviderRoundTrip
from agentrun.retry.rate_limit import AnthropicRateLimitExtractor
from agentrun.utils.logging import get_logger

logger = get_logger(__name__)

_STOP_REASONS = {
    "end_turn": StopReason.END_TURN,
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
    "pause_turn": StopReason.END_TURN,
}

_TOOL_CHOICES = {
    ToolChoice.AUTO: {"type": "auto"},
    ToolChoice.NONE: {"type": "none"},
    ToolChoice.REQUIRED: {"type": "any"},
}

_SCHEMA_INSTRUCTION = (
    "Respond with a single JSON object and nothing else. "
    "It must conform to this JSON Schema:\n{schema}"
)

_extractor = AnthropicRateLimitExtractor()


def _tool_input(arguments: str) -> Any:
    if not arguments.strip():
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        logger.error("failed_to_decode_tool_arguments", arguments=arguments)
        return {}


def to_anthropic_messages(messages: list[Message]) -> list[dict]:
    """Convert history to Messages API content blocks."""
    result: list[dict] = []
    for message in messages:
        blocks: list[dict] = []
        for block in message.contents:
            if isinstance(block, TextContent):
                if block.text:
                    blocks.append({"type": "text", "text": block.text})
            elif isinstance(block, ToolUseContent):
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": _tool_input(block.arguments),
                    }
                )
            elif isinstance(block, ToolResultContent):
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block.tool_call_id,
                        "content": block.content,
                        "is_error": block.is_error,
                    }
                )
        if blocks:
            result.append({"role": message.role.value, "content": blocks})
    return result


def to_anthropic_params(request: ProviderRequest) -> dict[str, Any]:
    """Build the keyword arguments for messages.create (minus model and max_tokens)."""
    params: dict[str, Any] = {"messages": to_anthropic_messages(request.messages)}

    system_parts = [request.system_prompt] if request.system_prompt else []
    if request.response_schema is not None:
        system_parts.append(
            _SCHEMA_INSTRUCTION.format(schema=json.dumps(request.response_schema, indent=2))
        )
    if system_parts:
        params["system"] = "\n\n".join(system_parts)

    if request.tools:
        params["tools"] = [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in request.tools
        ]
        if request.tool_choice is not None:
            params["tool_choice"] = _TOOL_CHOICES[request.tool_choice]
    return params


def from_anthropic_message(message: Any) -> ProviderResponse:
    """Convert an Anthropic Message into a ProviderResponse."""
    if message.stop_reason == "refusal":
        raise FatalProviderError("Response refused by the model", category="content_blocked")

    content: list[TextContent | ToolUseContent] = []
    for block in message.content:
        if block.type == "text":
            content.append(TextContent(text=block.text))
        elif block.type == "tool_use":
            content.append(
                ToolUseContent(
                    id=block.id,
                    name=block.name,
                    arguments=json.dumps(block.input, ensure_ascii=False),
                )
            )

    usage = TokenUsage()
    if message.usage:
        usage = TokenUsage(
            input_tokens=message.usage.input_tokens or 0,
            output_tokens=message.usage.output_tokens or 0,
        )

    return ProviderResponse(
        content=content,
        stop_reason=_STOP_REASONS.get(message.stop_reason),
        usage=usage,
        model=message.model,
    )


def classify_anthropic_error(exc: BaseException) -> ProviderError:
    """Map anthropic SDK exceptions to ProviderError subclasses."""
    if isinstance(exc, APITimeoutError):
        return ServerError(f"Request timeout: {exc}")
    if isinstance(exc, APIConnectionError):
        return ServerError(f"Network error: {exc}")
    if isinstance(exc, APIStatusError):
        headers = dict(exc.response.headers)
        return classify_status(
            exc.status_code,
            exc.message,
            headers,
            retry_after=_extractor.extract(headers).suggested_wait,
        )
    return classify_exception(exc)


class AnthropicRoundTrip(BaseModel, ProviderRoundTrip):
    """
    One non-streaming Messages API call per round trip.

    The Messages API has no JSON response format, so a response schema is
    passed as a system instruction.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    model_name: str | None = Field(
        default=None,
        description="Model name for API calls (e.g., claude-sonnet-4-5)",
    )
    api_key: SecretStr | None = Field(default=None, exclude=True)
    base_url: str | None = Field(default=None, description="Custom API base URL")
    client: Any = Field(default=None, exclude=True)

    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1)

    def model_post_init(self, __context) -> None:
        """Initialize AsyncAnthropic client after model creation."""
        from agentrun.config import settings

        if self.model_name is None:
            self.model_name = settings.anthropic_model
        if self.max_tokens is None:
            self.max_tokens = settings.anthropic_max_tokens

        if self.client is None:
            # Resolve API Key: argument > config > env
            if self.api_key:
                resolved_api_key = self.api_key.get_secret_value()
            elif settings.anthropic_api_key:
                resolved_api_key = settings.anthropic_api_key.get_secret_value()
            else:
                resolved_api_key = os.getenv("ANTHROPIC_API_KEY")

            client_kwargs: dict[str, Any] = {"api_key": resolved_api_key, "max_retries": 0}
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            self.client = AsyncAnthropic(**client_kwargs)

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        params = to_anthropic_params(request)
        params["model"] = self.model_name
        params["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            params["temperature"] = self.temperature

        logger.info(
            "llm_request",
            model=self.model_name,
            messages_count=len(params["messages"]),
            tools_count=len(params.get("tools", [])),
            structured_output=request.response_schema is not None,
        )

        try:
            message = await self.client.messages.create(**params)
        except Exception as e:
            logger.error(
                "llm_request_failed",
                model=self.model_name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise classify_anthropic_error(e) from e

        response = from_anthropic_message(message)
        logger.info(
            "llm_response",
            model=response.model,
            stop_reason=response.stop_reason.value if response.stop_reason else None,
            tool_calls=len(response.tool_use_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return response


__all__ = [
    "AnthropicRoundTrip",
    "classify_anthropic_error",
    "from_anthropic_message",
    "to_anthropic_messages",
    "to_anthropic_params",
]
