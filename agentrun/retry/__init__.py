"""
Retry module - backoff policy, rate-limit hints and the retrying round trip.
"""

from .policy import RetryConfiguration, RetryEvent, RetryEventHandler, RetryPolicy
from .rate_limit import (
    AnthropicRateLimitExtractor,
    DefaultRateLimitExtractor,
    OpenAIRateLimitExtractor,
    RateLimitHintExtractor,
    RateLimitInfo,
)
from .round_trip import RetryingRoundTrip

__all__ = [
    "AnthropicRateLimitExtractor",
    "DefaultRateLimitExtractor",
    "OpenAIRateLimitExtractor",
    "RateLimitHintExtractor",
    "RateLimitInfo",
    "RetryConfiguration",
    "RetryEvent",
    "RetryEventHandler",
    "RetryPolicy",
    "RetryingRoundTrip",
]
