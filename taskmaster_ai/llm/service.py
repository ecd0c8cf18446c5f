"""
Unified AI service entry points.

Thin keyword-argument wrappers that build a ``CanonicalRequest`` and hand
it to the orchestrator, for callers that think in terms of "generate text
for role X as command Y" rather than request objects.

Example:
    >>> result = await generate_text_service(
    ...     prompt="Expand task 12 into subtasks",
    ...     role="main",
    ...     command_name="expand-task",
    ...     project_root="/work/project",
    ... )
    >>> print(result.text)
    >>> print(result.usage_record.total_cost)
"""

import asyncio
from typing import Mapping, Optional, Type, Union

from pydantic import BaseModel

from taskmaster_ai.llm.models import CanonicalResult, StreamResult
from taskmaster_ai.llm.orchestrator import Orchestrator, get_orchestrator
from taskmaster_ai.providers.interfaces import CallerContext, CanonicalRequest, Role


def build_request(
    *,
    prompt: str,
    role: Union[Role, str] = Role.MAIN,
    system_prompt: Optional[str] = None,
    response_schema: Optional[Type[BaseModel]] = None,
    object_name: str = "generated_object",
    session_overrides: Optional[Mapping[str, str]] = None,
    project_root: str = ".",
    command_name: str = "unknown",
    caller_id: str = "",
    output_type: str = "cli",
) -> CanonicalRequest:
    """
    Build a canonical request from keyword arguments.

    Raises:
        pydantic.ValidationError: Blank prompt or unknown initial role
    """
    return CanonicalRequest(
        role=role,
        system_prompt=system_prompt,
        user_prompt=prompt,
        response_schema=response_schema,
        object_name=object_name,
        caller_context=CallerContext(
            session_overrides=dict(session_overrides or {}),
            project_root=project_root,
            command_name=command_name,
            caller_id=caller_id,
            output_type=output_type,
        ),
    )


async def generate_text_service(
    *,
    prompt: str,
    role: Union[Role, str] = Role.MAIN,
    system_prompt: Optional[str] = None,
    session_overrides: Optional[Mapping[str, str]] = None,
    project_root: str = ".",
    command_name: str = "unknown",
    caller_id: str = "",
    output_type: str = "cli",
    cancel_event: Optional[asyncio.Event] = None,
    run_timeout: Optional[float] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> CanonicalResult:
    """
    Generate text, escalating across roles as needed.

    Returns:
        CanonicalResult with ``text`` and ``usage_record``

    Raises:
        AllRolesExhaustedError: Every role failed or was skipped
        OrchestrationCancelledError: Cancelled or run timeout elapsed
    """
    request = build_request(
        prompt=prompt,
        role=role,
        system_prompt=system_prompt,
        session_overrides=session_overrides,
        project_root=project_root,
        command_name=command_name,
        caller_id=caller_id,
        output_type=output_type,
    )
    return await (orchestrator or get_orchestrator()).generate_text(
        request, cancel_event=cancel_event, run_timeout=run_timeout
    )


async def generate_object_service(
    *,
    prompt: str,
    schema: Type[BaseModel],
    object_name: str = "generated_object",
    role: Union[Role, str] = Role.MAIN,
    system_prompt: Optional[str] = None,
    session_overrides: Optional[Mapping[str, str]] = None,
    project_root: str = ".",
    command_name: str = "unknown",
    caller_id: str = "",
    output_type: str = "cli",
    cancel_event: Optional[asyncio.Event] = None,
    run_timeout: Optional[float] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> CanonicalResult:
    """
    Generate an object validated against ``schema``.

    Returns:
        CanonicalResult with ``object`` (an instance of ``schema``)
    """
    request = build_request(
        prompt=prompt,
        role=role,
        system_prompt=system_prompt,
        response_schema=schema,
        object_name=object_name,
        session_overrides=session_overrides,
        project_root=project_root,
        command_name=command_name,
        caller_id=caller_id,
        output_type=output_type,
    )
    return await (orchestrator or get_orchestrator()).generate_object(
        request, cancel_event=cancel_event, run_timeout=run_timeout
    )


async def stream_text_service(
    *,
    prompt: str,
    role: Union[Role, str] = Role.MAIN,
    system_prompt: Optional[str] = None,
    session_overrides: Optional[Mapping[str, str]] = None,
    project_root: str = ".",
    command_name: str = "unknown",
    caller_id: str = "",
    output_type: str = "cli",
    cancel_event: Optional[asyncio.Event] = None,
    run_timeout: Optional[float] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> StreamResult:
    """
    Open a text stream. No usage record is produced for streams.

    Example:
        >>> stream = await stream_text_service(prompt="Draft a PRD outline")
        >>> async for chunk in stream:
        ...     print(chunk, end="")
    """
    request = build_request(
        prompt=prompt,
        role=role,
        system_prompt=system_prompt,
        session_overrides=session_overrides,
        project_root=project_root,
        command_name=command_name,
        caller_id=caller_id,
        output_type=output_type,
    )
    return await (orchestrator or get_orchestrator()).stream_text(
        request, cancel_event=cancel_event, run_timeout=run_timeout
    )


__all__ = [
    "build_request",
    "generate_text_service",
    "generate_object_service",
    "stream_text_service",
]
