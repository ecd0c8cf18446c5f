"""Prometheus metrics for the AI orchestration engine.

Counts what the orchestrator does per run so fallback behaviour can be
watched in production:
- Provider attempts by outcome
- Role skips (missing credentials) and escalations
- Run outcomes and run duration
- Cost and token totals per provider

Usage:
    from taskmaster_ai.observability.metrics import (
        increment_counter,
        record_histogram,
        track_duration,
    )

    increment_counter("provider_attempts_total", labels={"provider": "openai", "outcome": "success"})
    record_histogram("orchestration_duration_seconds", 2.4, labels={"outcome": "succeeded"})

    with track_duration("orchestration_duration_seconds", labels={"outcome": "succeeded"}):
        await orchestrator.generate_text(request)
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_PREFIX = "taskmaster_"

# Private registry so embedding applications keep their default one clean
_registry = CollectorRegistry()

# Attempt Metrics
provider_attempts_total = Counter(
    "taskmaster_provider_attempts_total",
    "Provider calls by outcome",
    ["provider", "outcome"],  # outcome: success, retryable_failure, fatal_failure
    registry=_registry,
)

attempt_duration_seconds = Histogram(
    "taskmaster_attempt_duration_seconds",
    "Duration of a single provider call in seconds",
    ["provider"],
    registry=_registry,
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf")),
)

# Role Metrics
role_skips_total = Counter(
    "taskmaster_role_skips_total",
    "Roles skipped without a provider call",
    ["role", "reason"],  # reason: missing_credentials, configuration
    registry=_registry,
)

role_escalations_total = Counter(
    "taskmaster_role_escalations_total",
    "Escalations from one role to the next",
    ["from_role"],
    registry=_registry,
)

# Run Metrics
orchestration_runs_total = Counter(
    "taskmaster_orchestration_runs_total",
    "Orchestration runs by terminal outcome",
    ["outcome"],  # outcome: succeeded, all_roles_exhausted, cancelled
    registry=_registry,
)

orchestration_duration_seconds = Histogram(
    "taskmaster_orchestration_duration_seconds",
    "Duration of orchestration runs in seconds",
    ["outcome"],
    registry=_registry,
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
)

# Cost Metrics
cost_usd_total = Counter(
    "taskmaster_cost_usd_total",
    "Total cost in USD",
    ["provider"],
    registry=_registry,
)

llm_tokens_total = Counter(
    "taskmaster_llm_tokens_total",
    "Total number of LLM tokens used",
    ["provider", "token_type"],  # token_type: input, output
    registry=_registry,
)


def increment_counter(
    metric_name: str,
    value: float = 1.0,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Increment a counter metric.

    Args:
        metric_name: Name of the counter (with or without taskmaster_ prefix)
        value: Amount to increment by (default: 1.0)
        labels: Optional labels as key-value pairs

    Example:
        >>> increment_counter("role_skips_total", labels={"role": "main", "reason": "missing_credentials"})
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Counter):
        if labels:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def record_histogram(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Record a histogram observation.

    Args:
        metric_name: Name of the histogram (with or without taskmaster_ prefix)
        value: Value to observe
        labels: Optional labels as key-value pairs
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Histogram):
        if labels:
            metric.labels(**labels).observe(value)
        else:
            metric.observe(value)


@contextmanager
def track_duration(
    metric_name: str,
    labels: Optional[Dict[str, str]] = None,
) -> Iterator[None]:
    """Context manager recording the wall time of the block in a histogram.

    Example:
        >>> with track_duration("attempt_duration_seconds", labels={"provider": "anthropic"}):
        ...     result = await adapter.generate_text(binding, request, api_key=key)
    """
    start_time = time.monotonic()
    try:
        yield
    finally:
        record_histogram(metric_name, time.monotonic() - start_time, labels)


def get_metric_value(
    metric_name: str,
    labels: Optional[Dict[str, str]] = None,
) -> float:
    """Read the current value of a counter sample (0.0 when never set).

    Example:
        >>> get_metric_value("orchestration_runs_total", {"outcome": "succeeded"})
        3.0
    """
    if not metric_name.startswith(_PREFIX):
        metric_name = _PREFIX + metric_name
    sample_name = metric_name if metric_name.endswith("_total") else f"{metric_name}_total"
    value = _registry.get_sample_value(sample_name, labels or {})
    return value or 0.0


def get_metrics_registry() -> CollectorRegistry:
    """Get the metrics registry used by the orchestrator."""
    return _registry


def get_metrics_output() -> bytes:
    """Get Prometheus-formatted metrics output.

    Example:
        >>> print(get_metrics_output().decode("utf-8"))
    """
    return generate_latest(_registry)


def get_metrics_content_type() -> str:
    """Content type for serving ``get_metrics_output()`` over HTTP."""
    return CONTENT_TYPE_LATEST


def _get_metric(metric_name: str) -> Any:
    # Module attributes carry no prefix
    if metric_name.startswith(_PREFIX):
        metric_name = metric_name[len(_PREFIX):]
    return globals().get(metric_name)


__all__ = [
    "increment_counter",
    "record_histogram",
    "track_duration",
    "get_metric_value",
    "get_metrics_registry",
    "get_metrics_output",
    "get_metrics_content_type",
    # Metric objects
    "provider_attempts_total",
    "attempt_duration_seconds",
    "role_skips_total",
    "role_escalations_total",
    "orchestration_runs_total",
    "orchestration_duration_seconds",
    "cost_usd_total",
    "llm_tokens_total",
]
