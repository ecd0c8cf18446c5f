"""
Tests for the retry policy.
"""

from __future__ import annotations

import random

import pytest

from taskmaster_ai.config import OrchestrationSettings
from taskmaster_ai.exceptions import (
    AuthError,
    InvalidRequestError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TransientNetworkError,
)
from taskmaster_ai.routing import RetryPolicy


@pytest.mark.parametrize(
    "error,retryable",
    [
        (RateLimitError("429"), True),
        (TransientNetworkError("reset"), True),
        (ProviderUnavailableError("503"), True),
        (AuthError("401"), False),
        (InvalidRequestError("400"), False),
        (ProviderError("unknown"), False),
        (ValueError("not a provider error"), False),
    ],
)
def test_is_retryable(error: BaseException, retryable: bool) -> None:
    assert RetryPolicy.is_retryable(error) is retryable


def test_should_retry_respects_attempt_budget() -> None:
    policy = RetryPolicy(max_retries=2)
    error = RateLimitError("429")

    assert policy.max_attempts == 3
    assert policy.should_retry(error, 1)
    assert policy.should_retry(error, 2)
    assert not policy.should_retry(error, 3)


def test_fatal_error_never_retried() -> None:
    assert not RetryPolicy(max_retries=5).should_retry(AuthError("bad key"), 1)


def test_zero_retries_means_single_attempt() -> None:
    policy = RetryPolicy(max_retries=0)

    assert policy.max_attempts == 1
    assert not policy.should_retry(RateLimitError("429"), 1)


def test_backoff_grows_exponentially_and_is_capped() -> None:
    policy = RetryPolicy(base_delay=1.0, backoff_multiplier=2.0, max_delay=5.0)

    assert [policy.backoff_duration(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_backoff_is_monotonic_without_jitter() -> None:
    policy = RetryPolicy(base_delay=0.5, backoff_multiplier=3.0, max_delay=30.0)
    delays = [policy.backoff_duration(n) for n in range(1, 8)]

    assert delays == sorted(delays)
    assert max(delays) <= 30.0


def test_jitter_stays_within_spread_and_cap() -> None:
    policy = RetryPolicy(base_delay=2.0, backoff_multiplier=2.0, max_delay=3.0, jitter=0.5)
    rng = random.Random(7)

    for attempt in range(1, 5):
        delay = policy.backoff_duration(attempt, rng)
        assert 0.0 <= delay <= 3.0

    first = policy.backoff_duration(1, random.Random(1))
    assert 1.0 <= first <= 3.0


def test_from_settings_copies_orchestration_values() -> None:
    settings = OrchestrationSettings(max_retries=4, base_delay=0.25, max_delay=2.0)

    policy = RetryPolicy.from_settings(settings)

    assert policy.max_retries == 4
    assert policy.base_delay == 0.25
    assert policy.max_delay == 2.0
    assert policy.backoff_multiplier == 2.0
