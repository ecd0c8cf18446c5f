"""Observability for the AI orchestration engine.

Components:
    - logging: Structured logging with structlog and correlation IDs
    - metrics: Prometheus counters and histograms for runs, attempts and cost

Usage:
    from taskmaster_ai.observability import get_logger, increment_counter

    logger = get_logger(__name__)
    logger.info("run_started", run_id="run-1a2b")

    increment_counter("orchestration_runs_total", labels={"outcome": "succeeded"})
"""

from taskmaster_ai.observability.logging import (
    bind_run_context,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from taskmaster_ai.observability.metrics import (
    get_metric_value,
    get_metrics_output,
    get_metrics_registry,
    increment_counter,
    record_histogram,
    track_duration,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_run_context",
    "set_correlation_id",
    "clear_correlation_id",
    "get_correlation_id",
    "increment_counter",
    "record_histogram",
    "track_duration",
    "get_metric_value",
    "get_metrics_registry",
    "get_metrics_output",
]
