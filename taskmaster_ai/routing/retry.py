"""
Retry Policy

Classifies provider failures as retryable or fatal and computes bounded
exponential backoff between attempts of the same role.
"""

import random
from typing import Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field

from taskmaster_ai.config import OrchestrationSettings
from taskmaster_ai.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    TransientNetworkError,
)

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    RateLimitError,
    TransientNetworkError,
    ProviderUnavailableError,
)


class RetryPolicy(BaseModel):
    """
    Retry configuration for one role.

    A role gets ``max_retries + 1`` attempts at most. Attempt numbers are
    1-based: the delay after attempt ``n`` is
    ``min(base_delay * backoff_multiplier ** (n - 1), max_delay)``.

    Attributes:
        max_retries: Retries after the first attempt (default: 2)
        base_delay: First delay in seconds (default: 1.0)
        backoff_multiplier: Multiplier for exponential backoff (default: 2)
        max_delay: Maximum delay in seconds (default: 30)
        jitter: Random spread as a fraction of the delay (default: 0)

    Example:
        >>> policy = RetryPolicy(max_retries=2, base_delay=1.0)
        >>> policy.backoff_duration(1), policy.backoff_duration(2)
        (1.0, 2.0)
    """

    max_retries: int = Field(default=2, description="Retries per role", ge=0, le=10)
    base_delay: float = Field(default=1.0, description="Initial delay seconds", ge=0.0)
    backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier", ge=1.0)
    max_delay: float = Field(default=30.0, description="Max delay seconds", ge=0.0)
    jitter: float = Field(default=0.0, description="Jitter ratio", ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: OrchestrationSettings) -> "RetryPolicy":
        """Build a policy from the ``[orchestration]`` configuration table."""
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            backoff_multiplier=settings.backoff_multiplier,
            max_delay=settings.max_delay,
            jitter=settings.jitter,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """True for rate limits, transient network errors and unavailable providers."""
        return isinstance(error, RETRYABLE_ERRORS)

    def should_retry(self, error: BaseException, attempt_number: int) -> bool:
        """
        Decide whether to retry after attempt ``attempt_number`` failed.

        Args:
            error: Classified failure of the attempt
            attempt_number: 1-based number of the attempt that failed

        Returns:
            True if the error is retryable and the role has attempts left
        """
        return self.is_retryable(error) and attempt_number < self.max_attempts

    def backoff_duration(self, attempt_number: int, rng: Optional[random.Random] = None) -> float:
        """
        Delay in seconds before the attempt following ``attempt_number``.

        Args:
            attempt_number: 1-based number of the attempt that failed
            rng: Random source for jitter (defaults to the module RNG)
        """
        exponent = max(attempt_number - 1, 0)
        delay = min(self.base_delay * (self.backoff_multiplier ** exponent), self.max_delay)
        if self.jitter and delay > 0:
            spread = delay * self.jitter
            delay += (rng or random).uniform(-spread, spread)
        return min(max(delay, 0.0), self.max_delay)


__all__ = ["RetryPolicy", "RETRYABLE_ERRORS"]
