"""
Tests for structured logging helpers and Prometheus metrics.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs

from fakes import ALL_KEYS, Harness, ScriptedAdapter
from taskmaster_ai.exceptions import AuthError, RateLimitError
from taskmaster_ai.observability import (
    bind_run_context,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    get_metric_value,
    get_metrics_output,
    increment_counter,
    set_correlation_id,
    track_duration,
)
from taskmaster_ai.observability.metrics import get_metrics_registry
from taskmaster_ai.providers import CallerContext, CanonicalRequest, ProviderId


@pytest.fixture
def restore_structlog():
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    root_logger.handlers[:] = saved_handlers
    root_logger.setLevel(saved_level)
    structlog.reset_defaults()
    structlog.configure(cache_logger_on_first_use=False)


def test_increment_counter_accepts_prefixed_and_bare_names() -> None:
    labels = {"role": "research", "reason": "configuration"}
    before = get_metric_value("role_skips_total", labels)

    increment_counter("role_skips_total", labels=labels)
    increment_counter("taskmaster_role_skips_total", labels=labels)

    assert get_metric_value("taskmaster_role_skips_total", labels) == before + 2


def test_unknown_metric_is_ignored() -> None:
    increment_counter("no_such_metric_total", labels={"a": "b"})

    assert get_metric_value("no_such_metric_total", {"a": "b"}) == 0.0


def test_track_duration_observes_histogram() -> None:
    registry = get_metrics_registry()
    labels = {"provider": "mistral"}
    before = registry.get_sample_value("taskmaster_attempt_duration_seconds_count", labels) or 0.0

    with track_duration("attempt_duration_seconds", labels=labels):
        pass

    after = registry.get_sample_value("taskmaster_attempt_duration_seconds_count", labels)
    assert after == before + 1


def test_metrics_output_is_prometheus_text() -> None:
    increment_counter("orchestration_runs_total", labels={"outcome": "succeeded"})

    output = get_metrics_output().decode("utf-8")

    assert "taskmaster_orchestration_runs_total" in output


@pytest.mark.asyncio
async def test_orchestrator_records_attempt_and_run_metrics() -> None:
    harness = Harness(
        keys=ALL_KEYS,
        adapters={
            ProviderId.OPENAI: ScriptedAdapter(ProviderId.OPENAI, [AuthError("revoked")]),
            ProviderId.ANTHROPIC: ScriptedAdapter(
                ProviderId.ANTHROPIC, [RateLimitError("429"), "ok"]
            ),
        },
    )
    fatal = {"provider": "openai", "outcome": "fatal_failure"}
    retryable = {"provider": "anthropic", "outcome": "retryable_failure"}
    success = {"provider": "anthropic", "outcome": "success"}
    escalations = {"from_role": "main"}
    runs = {"outcome": "succeeded"}
    before = {
        name: get_metric_value(metric, labels)
        for name, metric, labels in [
            ("fatal", "provider_attempts_total", fatal),
            ("retryable", "provider_attempts_total", retryable),
            ("success", "provider_attempts_total", success),
            ("escalations", "role_escalations_total", escalations),
            ("runs", "orchestration_runs_total", runs),
        ]
    }

    await harness.orchestrator.generate_text(CanonicalRequest(user_prompt="hi"))

    assert get_metric_value("provider_attempts_total", fatal) == before["fatal"] + 1
    assert get_metric_value("provider_attempts_total", retryable) == before["retryable"] + 1
    assert get_metric_value("provider_attempts_total", success) == before["success"] + 1
    assert get_metric_value("role_escalations_total", escalations) == before["escalations"] + 1
    assert get_metric_value("orchestration_runs_total", runs) == before["runs"] + 1


@pytest.mark.asyncio
async def test_missing_credentials_counted_as_role_skip() -> None:
    harness = Harness(
        keys={"ANTHROPIC_API_KEY": "sk-ant"},
        adapters={ProviderId.ANTHROPIC: ScriptedAdapter(ProviderId.ANTHROPIC, ["ok"])},
    )
    labels = {"role": "main", "reason": "missing_credentials"}
    before = get_metric_value("role_skips_total", labels)

    with capture_logs() as logs:
        await harness.orchestrator.generate_text(
            CanonicalRequest(
                user_prompt="hi",
                caller_context=CallerContext(command_name="next", caller_id="u-1"),
            )
        )

    assert get_metric_value("role_skips_total", labels) == before + 1
    skipped = [log for log in logs if log["event"] == "role_skipped_missing_credentials"]
    assert skipped[0]["role"] == "main"
    assert skipped[0]["command_name"] == "next"
    assert skipped[0]["run_id"].startswith("run-")


def test_bind_run_context_drops_empty_values() -> None:
    with capture_logs() as logs:
        log = bind_run_context(get_logger("test"), run_id="run-1", caller_id="", model=None)
        log.info("run_started")

    assert logs[0]["run_id"] == "run-1"
    assert "caller_id" not in logs[0]
    assert "model" not in logs[0]


def test_correlation_id_helpers() -> None:
    generated = set_correlation_id()
    assert generated.startswith("req-")
    assert get_correlation_id() == generated

    assert set_correlation_id("req-fixed") == "req-fixed"
    clear_correlation_id()
    assert get_correlation_id() is None


def test_configure_logging_writes_json_file(tmp_path, restore_structlog) -> None:
    log_file = tmp_path / "logs" / "ai.log"
    configure_logging(level="DEBUG", format="json", log_file=log_file)
    set_correlation_id("req-json")

    try:
        get_logger("taskmaster_ai.test").info("usage_recorded", provider="openai")
    finally:
        clear_correlation_id()

    entry = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert entry["event"] == "usage_recorded"
    assert entry["provider"] == "openai"
    assert entry["correlation_id"] == "req-json"
    assert entry["level"] == "info"


def test_importing_package_keeps_host_logging_handlers() -> None:
    script = textwrap.dedent(
        """
        import logging

        host_handler = logging.StreamHandler()
        logging.getLogger().addHandler(host_handler)

        import taskmaster_ai  # noqa: F401

        handlers = logging.getLogger().handlers
        assert handlers == [host_handler], handlers
        """
    )

    completed = subprocess.run(
        [sys.executable, "-c", script],
        cwd=Path(__file__).resolve().parent.parent,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert completed.returncode == 0, completed.stderr
