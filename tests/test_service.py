"""
Tests for the keyword-argument service entry points.
"""

from __future__ import annotations

import pydantic
import pytest

from fakes import ALL_KEYS, Harness, Hang, ScriptedAdapter, Task
from taskmaster_ai.exceptions import OrchestrationCancelledError
from taskmaster_ai.llm import build_request, generate_object_service, generate_text_service, stream_text_service
from taskmaster_ai.providers import ProviderId, Role


def test_build_request_carries_caller_context() -> None:
    request = build_request(
        prompt="Expand task 3",
        role="research",
        command_name="expand-task",
        caller_id="user-7",
        session_overrides={"OPENAI_API_KEY": "sk-session"},
        output_type="mcp",
    )

    assert request.role is Role.RESEARCH
    assert request.user_prompt == "Expand task 3"
    assert request.caller_context.command_name == "expand-task"
    assert request.caller_context.caller_id == "user-7"
    assert request.caller_context.session_overrides == {"OPENAI_API_KEY": "sk-session"}
    assert request.caller_context.output_type == "mcp"


def test_build_request_rejects_unknown_role() -> None:
    with pytest.raises(pydantic.ValidationError):
        build_request(prompt="hi", role="planner")


@pytest.mark.asyncio
async def test_generate_text_service_uses_given_orchestrator() -> None:
    harness = Harness(
        keys=ALL_KEYS,
        adapters={ProviderId.OPENAI: ScriptedAdapter(ProviderId.OPENAI, ["summary"])},
    )

    result = await generate_text_service(
        prompt="Summarise",
        command_name="analyze",
        orchestrator=harness.orchestrator,
    )

    assert result.text == "summary"
    assert harness.sink.records[0].command_name == "analyze"


@pytest.mark.asyncio
async def test_session_override_key_reaches_adapter() -> None:
    adapter = ScriptedAdapter(ProviderId.OPENAI, ["ok"])
    harness = Harness(keys={}, adapters={ProviderId.OPENAI: adapter})

    await generate_text_service(
        prompt="hi",
        session_overrides={"OPENAI_API_KEY": "sk-from-session"},
        orchestrator=harness.orchestrator,
    )

    assert adapter.calls[0]["api_key"] == "sk-from-session"


@pytest.mark.asyncio
async def test_generate_object_service_validates_schema() -> None:
    harness = Harness(
        keys=ALL_KEYS,
        adapters={
            ProviderId.OPENAI: ScriptedAdapter(
                ProviderId.OPENAI, [{"title": "Ship", "priority": 2}]
            )
        },
    )

    result = await generate_object_service(
        prompt="Create a task",
        schema=Task,
        object_name="task",
        orchestrator=harness.orchestrator,
    )

    assert result.object == Task(title="Ship", priority=2)


@pytest.mark.asyncio
async def test_stream_text_service_yields_chunks() -> None:
    harness = Harness(
        keys=ALL_KEYS,
        adapters={ProviderId.OPENAI: ScriptedAdapter(ProviderId.OPENAI, [["a", "b", "c"]])},
    )

    stream = await stream_text_service(prompt="Stream", orchestrator=harness.orchestrator)

    assert await stream.collect() == "abc"


@pytest.mark.asyncio
async def test_run_timeout_is_passed_to_orchestrator() -> None:
    adapter = ScriptedAdapter(ProviderId.OPENAI, [Hang()])
    harness = Harness(keys=ALL_KEYS, adapters={ProviderId.OPENAI: adapter})

    with pytest.raises(OrchestrationCancelledError) as exc_info:
        await generate_text_service(
            prompt="Slow", run_timeout=0.05, orchestrator=harness.orchestrator
        )

    assert exc_info.value.reason == "run_timeout"
    assert adapter.cancelled
