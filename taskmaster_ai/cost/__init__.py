"""
Usage Telemetry

Per-run cost computation and usage record delivery.

Example:
    >>> from taskmaster_ai.cost import TelemetryEmitter, InMemoryUsageSink
    >>> sink = InMemoryUsageSink()
    >>> emitter = TelemetryEmitter(sink=sink)
"""

from taskmaster_ai.cost.tracker import (
    COST_QUANTUM,
    InMemoryUsageSink,
    TelemetryEmitter,
    TelemetrySink,
    UsageRecord,
    UsageReport,
    calculate_cost,
    get_usage_sink,
)

__all__ = [
    "COST_QUANTUM",
    "calculate_cost",
    "UsageRecord",
    "UsageReport",
    "TelemetrySink",
    "InMemoryUsageSink",
    "TelemetryEmitter",
    "get_usage_sink",
]
