from datetime import datetime, timedelta, timezone

import pytest

from agentrun.retry import (
    AnthropicRateLimitExtractor,
    DefaultRateLimitExtractor,
    OpenAIRateLimitExtractor,
    RateLimitHintExtractor,
    RateLimitInfo,
)
from agentrun.retry.rate_limit import parse_duration, parse_retry_after

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("120ms", 0.12),
        ("1s", 1.0),
        ("2m", 120.0),
        ("1h", 3600.0),
        ("6m0s", 360.0),
        ("1m30.5s", 90.5),
        ("30", 30.0),
        ("0.5", 0.5),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", [None, "", "soon", "5x", "s5"])
def test_parse_duration_rejects_garbage(value):
    assert parse_duration(value) is None


def test_parse_retry_after_http_date():
    value = "Wed, 01 Jan 2025 12:00:30 GMT"
    assert parse_retry_after(value, now=lambda: NOW) == pytest.approx(30.0)


def test_default_extractor_reads_retry_after_only():
    info = DefaultRateLimitExtractor().extract(
        {"Retry-After": "7", "x-ratelimit-reset-requests": "1s"}
    )
    assert info.retry_after == 7.0
    assert info.requests_reset_in is None
    assert info.suggested_wait == 7.0


def test_openai_extractor():
    headers = {
        "x-ratelimit-remaining-requests": "0",
        "x-ratelimit-remaining-tokens": "1200",
        "x-ratelimit-reset-requests": "120ms",
        "x-ratelimit-reset-tokens": "2m",
    }
    info = OpenAIRateLimitExtractor().extract(headers)

    assert info.requests_remaining == 0
    assert info.tokens_remaining == 1200
    assert info.requests_reset_in == pytest.approx(0.12)
    assert info.tokens_reset_in == pytest.approx(120.0)
    assert info.retry_after is None
    # requests reset is preferred over tokens reset
    assert info.suggested_wait == pytest.approx(0.12)


def test_openai_extractor_prefers_retry_after():
    info = OpenAIRateLimitExtractor().extract(
        {"retry-after": "3", "x-ratelimit-reset-requests": "1s"}
    )
    assert info.suggested_wait == 3.0


def test_anthropic_extractor_parses_rfc3339_resets():
    headers = {
        "anthropic-ratelimit-requests-remaining": "4",
        "anthropic-ratelimit-requests-reset": (NOW + timedelta(seconds=20)).isoformat(),
        "anthropic-ratelimit-tokens-remaining": "0",
        "anthropic-ratelimit-tokens-reset": "2025-01-01T12:01:00Z",
    }
    info = AnthropicRateLimitExtractor(now=lambda: NOW).extract(headers)

    assert info.requests_remaining == 4
    assert info.tokens_remaining == 0
    assert info.requests_reset_in == pytest.approx(20.0)
    assert info.tokens_reset_in == pytest.approx(60.0)
    assert info.suggested_wait == pytest.approx(20.0)


def test_anthropic_extractor_clamps_past_resets():
    headers = {"anthropic-ratelimit-requests-reset": "2024-12-31T00:00:00Z"}
    info = AnthropicRateLimitExtractor(now=lambda: NOW).extract(headers)
    assert info.requests_reset_in == 0.0


def test_empty_headers_give_empty_info():
    for extractor in (
        DefaultRateLimitExtractor(),
        OpenAIRateLimitExtractor(),
        AnthropicRateLimitExtractor(),
    ):
        assert isinstance(extractor, RateLimitHintExtractor)
        info = extractor.extract({})
        assert info.is_empty
        assert info.suggested_wait is None


def test_suggested_wait_precedence():
    assert RateLimitInfo(retry_after=1, requests_reset_in=2, tokens_reset_in=3).suggested_wait == 1
    assert RateLimitInfo(requests_reset_in=2, tokens_reset_in=3).suggested_wait == 2
    assert RateLimitInfo(tokens_reset_in=3).suggested_wait == 3
