"""
LLM orchestration package.

Key Components:
    - Orchestrator: Role-sequence state machine with retry and escalation
    - CanonicalResult / StreamResult / Attempt: Run outputs
    - generate_text_service / generate_object_service / stream_text_service:
      Keyword-argument entry points
"""

from taskmaster_ai.llm.models import (
    Attempt,
    AttemptOutcome,
    CanonicalResult,
    OrchestrationState,
    RunStateMachine,
    StreamResult,
    VALID_TRANSITIONS,
    can_transition,
)
from taskmaster_ai.llm.orchestrator import CallMode, Orchestrator, get_orchestrator
from taskmaster_ai.llm.service import (
    build_request,
    generate_object_service,
    generate_text_service,
    stream_text_service,
)

__all__ = [
    "Attempt",
    "AttemptOutcome",
    "CanonicalResult",
    "OrchestrationState",
    "RunStateMachine",
    "StreamResult",
    "VALID_TRANSITIONS",
    "can_transition",
    "CallMode",
    "Orchestrator",
    "get_orchestrator",
    "build_request",
    "generate_text_service",
    "generate_object_service",
    "stream_text_service",
]
