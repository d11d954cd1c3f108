"""
Retry policy: exponential backoff with jitter.

    delay(attempt) = min(max_delay, base_delay * 2 ** attempt)
    jittered       = delay * (1 - jitter * u),   u ~ U[0, 1)

`attempt` is the 0-based index of the try that just failed, so the first
retry waits about `base_delay`. Jitter only shortens a delay, which keeps
every computed wait at or below `max_delay`. A retry-after hint from the
provider wins when it is longer than the computed delay.
"""

import random
from dataclasses import dataclass, field
from typing import Callable

from agentrun.errors import FailureKind, ProviderError, RateLimitedError


@dataclass(frozen=True)
class RetryEvent:
    """Emitted once per retry decision, before the wait starts."""

    attempt: int  # 1-based retry number
    max_retries: int
    delay: float
    error: ProviderError

    @property
    def reason(self) -> str:
        if isinstance(self.error, RateLimitedError):
            return "Rate limit exceeded"
        if self.error.kind is FailureKind.SERVER_ERROR:
            if self.error.status_code is not None:
                return f"Server error ({self.error.status_code})"
            if self.error.message.startswith("Request timeout"):
                return "Request timeout"
            return "Network error"
        return "Retryable error"

    @property
    def remaining_retries(self) -> int:
        return max(0, self.max_retries - self.attempt)


RetryEventHandler = Callable[[RetryEvent], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Pure backoff calculator."""

    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_retries", max(0, self.max_retries))
        object.__setattr__(self, "base_delay", max(0.0, self.base_delay))
        object.__setattr__(self, "max_delay", max(self.base_delay, self.max_delay))
        object.__setattr__(self, "jitter", min(1.0, max(0.0, self.jitter)))

    @property
    def max_attempts(self) -> int:
        """First try plus retries."""
        return self.max_retries + 1

    def backoff(self, attempt: int) -> float:
        """Un-jittered delay after the failed try with 0-based index `attempt`."""
        if self.base_delay == 0:
            return 0.0
        # cap the exponent so huge attempt numbers cannot overflow
        exponent = min(attempt, 62)
        return min(self.max_delay, self.base_delay * (2 ** exponent))

    def delay_for(
        self,
        attempt: int,
        error: ProviderError,
        retry_after: float | None = None,
        rng: Callable[[], float] = random.random,
    ) -> float | None:
        """
        Wait before the next try, or None to give up.

        Args:
            attempt: 0-based index of the try that failed
            error: Classified failure
            retry_after: Provider hint in seconds, if any
            rng: Uniform [0, 1) source, injectable for tests
        """
        if not error.is_transient or attempt >= self.max_retries:
            return None

        delay = self.backoff(attempt) * (1.0 - self.jitter * rng())
        if retry_after is not None and retry_after > delay:
            return retry_after
        return delay


@dataclass(frozen=True)
class RetryConfiguration:
    """
    Named retry policy plus an optional event callback.

    Examples:
        RetryConfiguration.default()
        RetryConfiguration.disabled()
        RetryConfiguration.aggressive(on_retry=lambda e: print(e.reason))
        RetryConfiguration.custom(max_retries=10, base_delay=2.0)
    """

    name: str = "default"
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    on_retry: RetryEventHandler | None = None

    @property
    def is_enabled(self) -> bool:
        return self.policy.max_retries > 0

    @classmethod
    def default(cls, on_retry: RetryEventHandler | None = None) -> "RetryConfiguration":
        return cls("default", RetryPolicy(5, 1.0, 60.0, 0.1), on_retry)

    @classmethod
    def disabled(cls, on_retry: RetryEventHandler | None = None) -> "RetryConfiguration":
        return cls("disabled", RetryPolicy(0, 0.0, 0.0, 0.0), on_retry)

    @classmethod
    def aggressive(cls, on_retry: RetryEventHandler | None = None) -> "RetryConfiguration":
        return cls("aggressive", RetryPolicy(10, 0.5, 120.0, 0.2), on_retry)

    @classmethod
    def conservative(cls, on_retry: RetryEventHandler | None = None) -> "RetryConfiguration":
        return cls("conservative", RetryPolicy(3, 2.0, 30.0, 0.1), on_retry)

    @classmethod
    def custom(
        cls,
        max_retries: int,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        jitter: float = 0.1,
        on_retry: RetryEventHandler | None = None,
    ) -> "RetryConfiguration":
        return cls("custom", RetryPolicy(max_retries, base_delay, max_delay, jitter), on_retry)

    @classmethod
    def from_name(
        cls, name: str | None = None, on_retry: RetryEventHandler | None = None
    ) -> "RetryConfiguration":
        """Build a preset by name, defaulting to settings.retry_preset."""
        if name is None:
            from agentrun.config import settings

            name = settings.retry_preset
        factory = _PRESETS.get(name)
        if factory is None:
            raise ValueError(f"Unknown retry preset: {name}. Available: {sorted(_PRESETS)}")
        return factory(cls, on_retry)


_PRESETS = {
    "default": RetryConfiguration.default.__func__,
    "disabled": RetryConfiguration.disabled.__func__,
    "aggressive": RetryConfiguration.aggressive.__func__,
    "conservative": RetryConfiguration.conservative.__func__,
}


__all__ = ["RetryConfiguration", "RetryEvent", "RetryEventHandler", "RetryPolicy"]
