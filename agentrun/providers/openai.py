"""
OpenAI round trip - Chat Completions API (and OpenAI-compatible endpoints).
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from agentrun.domain import (
    Message,
    MessageRole,
    ProviderRequest,
    ProviderResponse,
    StopReason,
    TextContent,
    TokenUsage,
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
from agentrun.retry.rate_limit import OpenAIRateLimitExtractor
from agentrun.utils.logging import get_logger

logger = get_logger(__name__)

_FINISH_REASONS = {
    "stop": StopReason.END_TURN,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "length": StopReason.MAX_TOKENS,
}

_extractor = OpenAIRateLimitExtractor()


def to_openai_messages(messages: list[Message], system_prompt: str | None = None) -> list[dict]:
    """Convert history to Chat Completions messages."""
    result: list[dict] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    for message in messages:
        if message.role == MessageRole.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": message.text or None}
            if message.tool_uses:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments or "{}"},
                    }
                    for call in message.tool_uses
                ]
            result.append(entry)
            continue

        # Tool results travel as one "tool" message each
        for block in message.contents:
            if isinstance(block, ToolResultContent):
                result.append(
                    {"role": "tool", "tool_call_id": block.tool_call_id, "content": block.content}
                )
        if message.text:
            result.append({"role": "user", "content": message.text})

    return result


def to_openai_params(request: ProviderRequest) -> dict[str, Any]:
    """Build the keyword arguments for chat.completions.create (minus model)."""
    params: dict[str, Any] = {
        "messages": to_openai_messages(request.messages, request.system_prompt),
    }
    if request.tools:
        params["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in request.tools
        ]
        if request.tool_choice is not None:
            params["tool_choice"] = request.tool_choice.value
    if request.response_schema is not None:
        params["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": "final_response", "schema": request.response_schema},
        }
    return params


def from_openai_completion(completion: Any) -> ProviderResponse:
    """Convert a ChatCompletion into a ProviderResponse."""
    if not completion.choices:
        return ProviderResponse(model=getattr(completion, "model", None))

    choice = completion.choices[0]
    if choice.finish_reason == "content_filter":
        raise FatalProviderError("Response blocked by content filter", category="content_blocked")

    content: list[TextContent | ToolUseContent] = []
    if choice.message.content:
        content.append(TextContent(text=choice.message.content))
    for call in choice.message.tool_calls or []:
        content.append(
            ToolUseContent(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
        )

    usage = TokenUsage()
    if completion.usage:
        usage = TokenUsage(
            input_tokens=completion.usage.prompt_tokens or 0,
            output_tokens=completion.usage.completion_tokens or 0,
        )

    return ProviderResponse(
        content=content,
        stop_reason=_FINISH_REASONS.get(choice.finish_reason),
        usage=usage,
        model=completion.model,
    )


def classify_openai_error(exc: BaseException) -> ProviderError:
    """Map openai SDK exceptions to ProviderError subclasses."""
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


class OpenAIRoundTrip(BaseModel, ProviderRoundTrip):
    """
    One non-streaming Chat Completions call per round trip.

    Supports OpenAI models and any OpenAI-compatible endpoint via base_url.
    SDK-level retries are disabled; RetryingRoundTrip owns retry policy.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    model_name: str | None = Field(
        default=None,
        description="Model name for API calls (e.g., gpt-4o-mini)",
    )
    api_key: SecretStr | None = Field(default=None, exclude=True)
    base_url: str | None = Field(default=None)
    client: Any = Field(default=None, exclude=True)

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)

    def model_post_init(self, __context) -> None:
        """Initialize AsyncOpenAI client after model creation."""
        from agentrun.config import settings

        if self.model_name is None:
            self.model_name = settings.openai_model

        if self.client is None:
            # Resolve API Key: argument > config > env
            if self.api_key:
                resolved_api_key = self.api_key.get_secret_value()
            elif settings.openai_api_key:
                resolved_api_key = settings.openai_api_key.get_secret_value()
            else:
                resolved_api_key = os.getenv("OPENAI_API_KEY")

            resolved_base_url = (
                self.base_url or settings.openai_base_url or os.getenv("OPENAI_BASE_URL")
            )
            self.client = AsyncOpenAI(
                api_key=resolved_api_key,
                base_url=resolved_base_url,
                max_retries=0,
            )

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        params = to_openai_params(request)
        params["model"] = self.model_name
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_tokens:
            params["max_tokens"] = self.max_tokens

        logger.info(
            "llm_request",
            model=self.model_name,
            messages_count=len(params["messages"]),
            tools_count=len(params.get("tools", [])),
            structured_output="response_format" in params,
        )

        try:
            completion = await self.client.chat.completions.create(**params)
        except Exception as e:
            logger.error(
                "llm_request_failed",
                model=self.model_name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise classify_openai_error(e) from e

        response = from_openai_completion(completion)
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
    "OpenAIRoundTrip",
    "classify_openai_error",
    "from_openai_completion",
    "to_openai_messages",
    "to_openai_params",
]
