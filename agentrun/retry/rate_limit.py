"""
Rate-limit hint extraction from provider response headers.

Each vendor advertises its limits differently. A RateLimitHintExtractor turns
a header mapping into a RateLimitInfo so the retry loop can stay
vendor-neutral.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Mapping, Protocol, runtime_checkable


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate-limit hints parsed from one response."""

    retry_after: float | None = None
    requests_remaining: int | None = None
    tokens_remaining: int | None = None
    requests_reset_in: float | None = None
    tokens_reset_in: float | None = None

    @property
    def suggested_wait(self) -> float | None:
        """Best available wait hint in seconds."""
        for value in (self.retry_after, self.requests_reset_in, self.tokens_reset_in):
            if value is not None:
                return value
        return None

    @property
    def is_empty(self) -> bool:
        return self == RateLimitInfo()


@runtime_checkable
class RateLimitHintExtractor(Protocol):
    def extract(self, headers: Mapping[str, str]) -> RateLimitInfo: ...


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str | None) -> float | None:
    """
    Parse a duration such as "120ms", "1s", "2m", "1h", "6m0s" or "30".

    A plain number is read as seconds. Returns None when unparseable.
    """
    if value is None:
        return None
    text = value.strip().lower()
    if not text:
        return None
    try:
        return max(0.0, float(text))
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            return None
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        return None
    return total


def parse_retry_after(value: str | None, now: Callable[[], datetime] | None = None) -> float | None:
    """Parse a Retry-After value: delta seconds or an HTTP date."""
    if value is None:
        return None
    seconds = parse_duration(value)
    if seconds is not None:
        return seconds
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now() if now else datetime.now(timezone.utc)
    return max(0.0, (when - current).total_seconds())


def parse_timestamp_delta(
    value: str | None, now: Callable[[], datetime] | None = None
) -> float | None:
    """Seconds until an RFC 3339 timestamp, clamped at zero."""
    if not value:
        return None
    try:
        when = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now() if now else datetime.now(timezone.utc)
    return max(0.0, (when - current).total_seconds())


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _lower(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


class DefaultRateLimitExtractor:
    """Standard `retry-after` header only."""

    def extract(self, headers: Mapping[str, str]) -> RateLimitInfo:
        h = _lower(headers)
        return RateLimitInfo(retry_after=parse_retry_after(h.get("retry-after")))


class OpenAIRateLimitExtractor:
    """`x-ratelimit-*` headers plus `retry-after`."""

    def extract(self, headers: Mapping[str, str]) -> RateLimitInfo:
        h = _lower(headers)
        retry_after = parse_retry_after(h.get("retry-after"))
        if retry_after is None and "retry-after-ms" in h:
            ms = parse_duration(h["retry-after-ms"])
            retry_after = ms / 1000.0 if ms is not None else None
        return RateLimitInfo(
            retry_after=retry_after,
            requests_remaining=_parse_int(h.get("x-ratelimit-remaining-requests")),
            tokens_remaining=_parse_int(h.get("x-ratelimit-remaining-tokens")),
            requests_reset_in=parse_duration(h.get("x-ratelimit-reset-requests")),
            tokens_reset_in=parse_duration(h.get("x-ratelimit-reset-tokens")),
        )


class AnthropicRateLimitExtractor:
    """`anthropic-ratelimit-*` headers (RFC 3339 reset times) plus `retry-after`."""

    def __init__(self, now: Callable[[], datetime] | None = None):
        self._now = now

    def extract(self, headers: Mapping[str, str]) -> RateLimitInfo:
        h = _lower(headers)
        return RateLimitInfo(
            retry_after=parse_retry_after(h.get("retry-after"), self._now),
            requests_remaining=_parse_int(h.get("anthropic-ratelimit-requests-remaining")),
            tokens_remaining=_parse_int(h.get("anthropic-ratelimit-tokens-remaining")),
            requests_reset_in=parse_timestamp_delta(
                h.get("anthropic-ratelimit-requests-reset"), self._now
            ),
            tokens_reset_in=parse_timestamp_delta(
                h.get("anthropic-ratelimit-tokens-reset"), self._now
            ),
        )


__all__ = [
    "AnthropicRateLimitExtractor",
    "DefaultRateLimitExtractor",
    "OpenAIRateLimitExtractor",
    "RateLimitHintExtractor",
    "RateLimitInfo",
    "parse_duration",
    "parse_retry_after",
    "parse_timestamp_delta",
]
