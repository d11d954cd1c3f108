"""
Provider abstraction layer - one LLM round trip.

Responsibilities:
- Translate ProviderRequest to a vendor wire format
- Translate the vendor reply back to ProviderResponse
- Classify vendor failures into ProviderError subclasses

Does NOT handle:
- Retries (see agentrun.retry.round_trip)
- Tool loop logic
- State management
"""

from abc import ABC, abstractmethod

from agentrun.domain import ProviderRequest, ProviderResponse


class ProviderRoundTrip(ABC):
    """
    Unified round-trip interface.

    Implementations must raise ProviderError subclasses on failure so the
    retry layer can tell transient errors from fatal ones.
    """

    @abstractmethod
    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        """
        Perform one request/response exchange.

        Args:
            request: Vendor-neutral request

        Returns:
            ProviderResponse: Ordered content blocks, stop reason and usage
        """


__all__ = ["ProviderRoundTrip"]
