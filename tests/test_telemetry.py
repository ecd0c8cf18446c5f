"""
Tests for cost calculation and usage telemetry.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from taskmaster_ai.config import ModelSpec
from taskmaster_ai.cost import InMemoryUsageSink, TelemetryEmitter, TelemetrySink, calculate_cost
from taskmaster_ai.llm import Attempt, AttemptOutcome
from taskmaster_ai.providers import CallerContext, TokenUsage


def _attempt(provider: str = "anthropic", model: str = "claude-3-5-sonnet-20241022") -> Attempt:
    return Attempt(
        role="main",
        provider_id=provider,
        model_id=model,
        attempt_number=1,
        outcome=AttemptOutcome.SUCCESS,
    )


def test_calculate_cost_formula() -> None:
    pricing = ModelSpec(input=3.0, output=15.0)

    assert calculate_cost(pricing, 1000, 2000) == Decimal("0.033000")


def test_calculate_cost_is_pure() -> None:
    pricing = ModelSpec(input=2.5, output=10.0)

    assert calculate_cost(pricing, 1234, 567) == calculate_cost(pricing, 1234, 567)


def test_calculate_cost_rounds_half_up_to_six_places() -> None:
    # 1 token at $0.5 / 1M = 0.0000005 -> 0.000001
    assert calculate_cost(ModelSpec(input=0.5, output=0.0), 1, 0) == Decimal("0.000001")
    assert calculate_cost(ModelSpec(input=0.4, output=0.0), 1, 0) == Decimal("0.000000")


def test_calculate_cost_without_pricing_is_zero() -> None:
    assert calculate_cost(None, 10_000, 10_000) == Decimal("0.000000")


def test_emit_builds_and_delivers_record() -> None:
    sink = InMemoryUsageSink()
    emitter = TelemetryEmitter(sink=sink)
    context = CallerContext(command_name="expand-task", caller_id="user-9", output_type="mcp")

    record = emitter.emit(context, _attempt(), TokenUsage(input_tokens=1000, output_tokens=2000), 840)

    assert sink.records == [record]
    assert record.caller_id == "user-9"
    assert record.command_name == "expand-task"
    assert record.provider_id == "anthropic"
    assert record.role == "main"
    assert record.total_tokens == 3000
    assert record.total_cost == Decimal("0.033000")
    assert record.currency == "USD"
    assert record.processing_time_ms == 840
    assert record.output_type == "mcp"


def test_unknown_model_costs_zero_and_warns() -> None:
    sink = InMemoryUsageSink()

    with capture_logs() as logs:
        record = TelemetryEmitter(sink=sink).emit(
            CallerContext(caller_id="u"),
            _attempt("openai", "gpt-unreleased"),
            TokenUsage(input_tokens=500, output_tokens=500),
            10,
        )

    assert record.total_cost == Decimal("0.000000")
    assert any(log["event"] == "model_cost_unknown" for log in logs)


@pytest.mark.parametrize(
    "context_id,call_default,emitter_default,expected",
    [
        ("ctx", "call", "emitter", "ctx"),
        ("", "call", "emitter", "call"),
        ("", None, "emitter", "emitter"),
        ("", None, None, "unknown"),
    ],
)
def test_caller_id_fallback_order(context_id, call_default, emitter_default, expected) -> None:
    emitter = TelemetryEmitter(sink=InMemoryUsageSink(), default_user_id=emitter_default)

    record = emitter.emit(
        CallerContext(caller_id=context_id),
        _attempt(),
        TokenUsage(input_tokens=1, output_tokens=1),
        1,
        default_user_id=call_default,
    )

    assert record.caller_id == expected


def test_per_call_pricing_lookup_overrides_catalog() -> None:
    emitter = TelemetryEmitter(sink=InMemoryUsageSink())

    record = emitter.emit(
        CallerContext(caller_id="u"),
        _attempt(),
        TokenUsage(input_tokens=1_000_000, output_tokens=0),
        1,
        pricing_lookup=lambda provider, model: ModelSpec(input=1.0, output=1.0),
    )

    assert record.total_cost == Decimal("1.000000")


def test_sink_failure_is_logged_not_raised() -> None:
    class BrokenSink:
        def record(self, usage_record) -> None:
            raise OSError("disk full")

    with capture_logs() as logs:
        record = TelemetryEmitter(sink=BrokenSink()).emit(
            CallerContext(caller_id="u"), _attempt(), TokenUsage(input_tokens=1), 1
        )

    assert record is not None
    assert any(log["event"] == "telemetry_sink_failed" for log in logs)


def test_in_memory_sink_matches_protocol() -> None:
    assert isinstance(InMemoryUsageSink(), TelemetrySink)


def test_report_aggregates_by_provider_model_and_caller() -> None:
    sink = InMemoryUsageSink()
    emitter = TelemetryEmitter(sink=sink)
    usage = TokenUsage(input_tokens=1000, output_tokens=2000)

    emitter.emit(CallerContext(caller_id="alice"), _attempt(), usage, 1)
    emitter.emit(CallerContext(caller_id="bob"), _attempt(), usage, 1)
    emitter.emit(CallerContext(caller_id="alice"), _attempt("openai", "gpt-4o"), usage, 1)

    report = sink.get_report()
    assert report.call_count == 3
    assert report.total_tokens == 9000
    assert report.by_provider["anthropic"] == Decimal("0.066000")
    assert report.by_model["openai/gpt-4o"] == Decimal("0.022500")
    assert report.total_cost == Decimal("0.088500")

    alice = sink.get_report(caller_id="alice")
    assert alice.call_count == 2
    assert set(alice.by_caller) == {"alice"}


def test_sink_drops_oldest_records_past_capacity() -> None:
    sink = InMemoryUsageSink(max_records=2)
    emitter = TelemetryEmitter(sink=sink)

    for caller in ("a", "b", "c"):
        emitter.emit(CallerContext(caller_id=caller), _attempt(), TokenUsage(input_tokens=1), 1)

    assert [r.caller_id for r in sink.records] == ["b", "c"]
    sink.clear()
    assert sink.get_report().call_count == 0
