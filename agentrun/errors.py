"""
Exception hierarchy.

ProviderError - a classified round-trip failure:
    RateLimitedError, ServerError    transient, retried by RetryingRoundTrip
    FatalProviderError               never retried

AgentError - terminal run failure raised from the step stream. Every
AgentError carries the TerminationReason and the last known LoopPhase so a
caller can decide whether to resume (e.g. after a duplicate-call abort) or
surface a hard failure.
"""

import asyncio
import socket
from enum import Enum
from typing import Any, Mapping

from agentrun.domain.phase import AwaitingModel, LoopPhase, TerminationReason


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    FATAL = "fatal"


class ProviderError(Exception):
    """Base exception for classified provider failures."""

    kind: FailureKind = FailureKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.headers: dict[str, str] = {k.lower(): v for k, v in (headers or {}).items()}

    @property
    def is_transient(self) -> bool:
        return self.kind is not FailureKind.FATAL


class RateLimitedError(ProviderError):
    """HTTP 429 or an equivalent vendor signal."""

    kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: float | None = None,
        status_code: int | None = 429,
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(message, status_code=status_code, headers=headers)
        self.retry_after = retry_after


class ServerError(ProviderError):
    """5xx responses, timeouts and dropped connections."""

    kind = FailureKind.SERVER_ERROR

    def __init__(
        self,
        message: str = "Server error",
        *,
        status_code: int | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(message, status_code=status_code, headers=headers)


class FatalProviderError(ProviderError):
    """Authorization, malformed request, decode failure and anything unknown."""

    kind = FailureKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        category: str = "unknown",
        status_code: int | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(message, status_code=status_code, headers=headers)
        self.category = category


_STATUS_CATEGORIES = {
    400: "invalid_request",
    401: "unauthorized",
    403: "unauthorized",
    404: "not_found",
    422: "invalid_request",
}


def classify_status(
    status_code: int,
    message: str,
    headers: Mapping[str, str] | None = None,
    retry_after: float | None = None,
) -> ProviderError:
    """Map an HTTP status code to a classified ProviderError."""
    if status_code == 429:
        return RateLimitedError(
            message, retry_after=retry_after, status_code=status_code, headers=headers
        )
    if status_code == 408 or 500 <= status_code <= 599:
        return ServerError(message, status_code=status_code, headers=headers)
    return FatalProviderError(
        message,
        category=_STATUS_CATEGORIES.get(status_code, "unknown"),
        status_code=status_code,
        headers=headers,
    )


def classify_exception(exc: BaseException) -> ProviderError:
    """
    Classify an arbitrary exception raised by a round trip.

    Already-classified errors pass through. Timeouts and network failures are
    transient; anything else is fatal, local OSErrors included.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ServerError(f"Request timeout: {exc}")
    if isinstance(exc, (ConnectionError, socket.gaierror)):
        return ServerError(f"Network error: {exc}")
    if isinstance(exc, ValueError):
        return FatalProviderError(f"Decoding failed: {exc}", category="decoding_failed")
    return FatalProviderError(f"{type(exc).__name__}: {exc}")


class AgentError(Exception):
    """Base exception for terminal agent run failures."""

    reason: TerminationReason = TerminationReason.TOOL_ERROR

    def __init__(self, message: str, *, phase: LoopPhase | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.phase: LoopPhase = phase if phase is not None else AwaitingModel()
        self.details = details

    def __str__(self) -> str:
        return self.message


class MaxStepsExceededError(AgentError):
    reason = TerminationReason.MAX_STEPS_EXCEEDED

    def __init__(self, max_steps: int, **kwargs: Any):
        super().__init__(
            f"Agent exceeded maximum steps limit ({max_steps})",
            max_steps=max_steps,
            **kwargs,
        )
        self.max_steps = max_steps


class DuplicateToolCallError(AgentError):
    """The same tool was called with the same arguments too many times."""

    reason = TerminationReason.DUPLICATE_CALLS_DETECTED

    def __init__(self, tool_name: str, count: int, message: str | None = None, **kwargs: Any):
        super().__init__(
            message
            or f"Duplicate tool call detected: {tool_name} called {count} times with same input",
            tool_name=tool_name,
            count=count,
            **kwargs,
        )
        self.tool_name = tool_name
        self.count = count


class ToolCallLimitError(DuplicateToolCallError):
    """One tool exceeded its total call ceiling (arguments may differ)."""

    def __init__(self, tool_name: str, count: int, **kwargs: Any):
        super().__init__(
            tool_name,
            count,
            message=f"Tool call limit reached: {tool_name} called {count} times total",
            **kwargs,
        )


class ToolNotFoundError(AgentError):
    reason = TerminationReason.TOOL_ERROR

    def __init__(self, tool_name: str, **kwargs: Any):
        super().__init__(f"Tool not found: {tool_name}", tool_name=tool_name, **kwargs)
        self.tool_name = tool_name


class ToolExecutionError(AgentError):
    reason = TerminationReason.TOOL_ERROR

    def __init__(self, tool_name: str, error: BaseException, **kwargs: Any):
        super().__init__(
            f"Tool execution failed ({tool_name}): {error}",
            tool_name=tool_name,
            **kwargs,
        )
        self.tool_name = tool_name
        self.error = error


class OutputDecodingError(AgentError):
    reason = TerminationReason.OUTPUT_DECODING_FAILED

    def __init__(self, error: BaseException | str, **kwargs: Any):
        super().__init__(f"Failed to decode output: {error}", **kwargs)
        self.error = error


class AgentProviderError(AgentError):
    """A fatal or retry-exhausted provider failure aborted the run."""

    reason = TerminationReason.PROVIDER_ERROR

    def __init__(self, error: ProviderError, **kwargs: Any):
        super().__init__(
            f"LLM error: {error}",
            kind=error.kind.value,
            status_code=error.status_code,
            **kwargs,
        )
        self.error = error


class AgentCancelledError(AgentError):
    reason = TerminationReason.CANCELLED

    def __init__(self, message: str = "Agent run cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


__all__ = [
    "AgentCancelledError",
    "AgentError",
    "AgentProviderError",
    "DuplicateToolCallError",
    "FailureKind",
    "FatalProviderError",
    "MaxStepsExceededError",
    "OutputDecodingError",
    "ProviderError",
    "RateLimitedError",
    "ServerError",
    "ToolCallLimitError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "classify_exception",
    "classify_status",
]
