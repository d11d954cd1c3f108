"""
RetryingRoundTrip - a ProviderRoundTrip decorated with retry/backoff.

Transient failures (rate limits, 5xx, timeouts, dropped connections) are
retried according to a RetryPolicy; fatal failures propagate at once. The
retry loop itself is tenacity's AsyncRetrying, with the wait computed by the
policy and vendor hints supplied by a RateLimitHintExtractor.
"""

import asyncio
import random
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from agentrun.domain import ProviderRequest, ProviderResponse
from agentrun.errors import ProviderError, RateLimitedError, classify_exception
from agentrun.providers.base import ProviderRoundTrip
from agentrun.retry.policy import RetryConfiguration, RetryEvent, RetryEventHandler
from agentrun.retry.rate_limit import DefaultRateLimitExtractor, RateLimitHintExtractor
from agentrun.utils.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.is_transient


class RetryingRoundTrip(ProviderRoundTrip):
    """
    Wrap a round trip with classified, hint-aware retries.

    Example:
        >>> inner = OpenAIRoundTrip(model_name="gpt-4o-mini")
        >>> round_trip = RetryingRoundTrip(
        ...     inner,
        ...     RetryConfiguration.aggressive(),
        ...     OpenAIRateLimitExtractor(),
        ... )
        >>> response = await round_trip.execute(request)
    """

    def __init__(
        self,
        inner: ProviderRoundTrip,
        configuration: RetryConfiguration | None = None,
        extractor: RateLimitHintExtractor | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.inner = inner
        self.configuration = configuration or RetryConfiguration.default()
        self.extractor = extractor or DefaultRateLimitExtractor()
        self._sleep = sleep
        self._rng = rng

    def retry_hint(self, error: ProviderError) -> float | None:
        """Provider-suggested wait for `error`, if any."""
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            return error.retry_after
        if error.headers:
            return self.extractor.extract(error.headers).suggested_wait
        return None

    async def execute(
        self,
        request: ProviderRequest,
        on_retry: RetryEventHandler | None = None,
    ) -> ProviderResponse:
        """
        Run the inner round trip, retrying transient failures.

        Args:
            request: Request passed unchanged to every attempt
            on_retry: Extra per-call retry observer, called after the
                configuration's own callback

        Raises:
            ProviderError: The fatal failure, or the last transient one once
                retries are exhausted
        """
        policy = self.configuration.policy

        def wait(retry_state: RetryCallState) -> float:
            error = retry_state.outcome.exception()
            delay = policy.delay_for(
                retry_state.attempt_number - 1,
                error,
                self.retry_hint(error),
                self._rng,
            )
            return delay if delay is not None else 0.0

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            event = RetryEvent(
                attempt=retry_state.attempt_number,
                max_retries=policy.max_retries,
                delay=retry_state.next_action.sleep,
                error=error,
            )
            logger.warning(
                "round_trip_retry",
                attempt=event.attempt,
                max_retries=event.max_retries,
                delay=round(event.delay, 3),
                reason=event.reason,
                status_code=error.status_code,
                error=str(error),
            )
            for handler in (self.configuration.on_retry, on_retry):
                if handler is None:
                    continue
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        "retry_callback_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )

        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait,
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep,
            reraise=True,
        )

        try:
            return await retrying(self._attempt, request)
        except ProviderError as e:
            logger.error(
                "round_trip_failed",
                kind=e.kind.value,
                status_code=e.status_code,
                error=str(e),
            )
            raise

    async def _attempt(self, request: ProviderRequest) -> ProviderResponse:
        try:
            return await self.inner.execute(request)
        except Exception as e:
            classified = classify_exception(e)
            if classified is e:
                raise
            raise classified from e


__all__ = ["RetryingRoundTrip"]
