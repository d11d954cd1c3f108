"""
Provider round trips.

- ProviderRoundTrip: Abstract base class
- OpenAIRoundTrip: OpenAI Chat Completions (and compatible endpoints)
- AnthropicRoundTrip: Anthropic Messages API
"""

from .anthropic import AnthropicRoundTrip
from .base import ProviderRoundTrip
from .openai import OpenAIRoundTrip

__all__ = [
    "AnthropicRoundTrip",
    "OpenAIRoundTrip",
    "ProviderRoundTrip",
]
