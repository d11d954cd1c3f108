"""
Logging behaviour: sensitive-field filtering and the events emitted by the
engine when a run fails.
"""

from unittest.mock import patch

import pytest
from structlog.testing import CapturingLogger

from agentrun.domain import AgentConfiguration, ProviderResponse, TextContent
from agentrun.engine import AgentExecutionEngine
from agentrun.errors import FatalProviderError, AgentProviderError
from agentrun.providers.base import ProviderRoundTrip
from agentrun.retry import RetryConfiguration, RetryingRoundTrip
from agentrun.utils.logging import filter_sensitive_data


def test_tokens_not_redacted_in_logs():
    """Test that token-related fields are not redacted in logs."""
    logger = CapturingLogger()

    event_dict = {
        "event": "test",
        "tokens": 100,
        "total_tokens": 150,
        "input_tokens": 50,
        "output_tokens": 100,
        "api_key": "secret-key",
        "openai_api_key": "sk-123",
        "password": "secret-pass",
        "Authorization": "Bearer abc",
    }

    filtered = filter_sensitive_data(logger, "info", event_dict.copy())

    assert filtered["tokens"] == 100
    assert filtered["total_tokens"] == 150
    assert filtered["input_tokens"] == 50
    assert filtered["output_tokens"] == 100

    assert filtered["api_key"] == "***REDACTED***"
    assert filtered["openai_api_key"] == "***REDACTED***"
    assert filtered["password"] == "***REDACTED***"
    assert filtered["Authorization"] == "***REDACTED***"
    assert filtered["event"] == "test"


class FailingRoundTrip(ProviderRoundTrip):
    async def execute(self, request):
        raise FatalProviderError("Invalid API key", category="unauthorized", status_code=401)


class TextRoundTrip(ProviderRoundTrip):
    async def execute(self, request):
        return ProviderResponse(content=[TextContent(text="done")])


@pytest.mark.asyncio
async def test_agent_failure_is_logged():
    engine = AgentExecutionEngine(
        RetryingRoundTrip(FailingRoundTrip(), RetryConfiguration.disabled()),
        config=AgentConfiguration(),
    )

    with patch("agentrun.engine.engine.logger") as mock_logger:
        with pytest.raises(AgentProviderError):
            async for _ in engine.run("test input"):
                pass

    call_args = mock_logger.warning.call_args
    assert call_args[0][0] == "agent_run_failed"
    kwargs = call_args[1]
    assert kwargs["reason"] == "provider_error"
    assert kwargs["steps"] == 0
    assert "error" in kwargs


@pytest.mark.asyncio
async def test_agent_completion_is_logged():
    engine = AgentExecutionEngine(
        RetryingRoundTrip(TextRoundTrip(), RetryConfiguration.disabled()),
        config=AgentConfiguration(),
    )

    with patch("agentrun.engine.engine.logger") as mock_logger:
        async for _ in engine.run("test input"):
            pass

    events = [call.args[0] for call in mock_logger.info.call_args_list]
    assert events == ["agent_run_started", "agent_run_completed"]
    assert mock_logger.info.call_args_list[1].kwargs["steps"] == 1
