"""
Orchestration Run Models

Attempt records, the canonical result, streaming result and the run state
machine with its transition table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from taskmaster_ai.cost.tracker import UsageRecord
from taskmaster_ai.exceptions import InvalidStateTransitionError
from taskmaster_ai.providers.interfaces import TokenUsage


class AttemptOutcome(str, Enum):
    """Outcome of one physical provider call."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


class Attempt(BaseModel):
    """
    One physical provider invocation.

    Attributes:
        role: Role the attempt ran under
        provider_id: Provider called
        model_id: Model called
        attempt_number: 1-based retry count within the role
        started_at: Start time (UTC)
        duration_ms: Wall time of the call
        outcome: success, retryable_failure or fatal_failure
        error_type: Exception class name on failure
        error_message: Exception message on failure
    """

    role: str
    provider_id: str
    model_id: str
    attempt_number: int = Field(..., ge=1)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = Field(0, ge=0)
    outcome: AttemptOutcome
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    @property
    def label(self) -> str:
        """Short form such as ``fallback:2 retryable_failure``."""
        return f"{self.role}:{self.attempt_number} {self.outcome.value}"


class CanonicalResult(BaseModel):
    """
    Successful orchestration run.

    ``text`` is set for text runs, ``object`` for object runs.

    Example:
        >>> result = await orchestrator.generate_text(request)
        >>> print(result.provider_id, result.usage.total_tokens)
        >>> print([a.label for a in result.attempts])
    """

    text: Optional[str] = None
    object: Optional[BaseModel] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    provider_id: str
    model_id: str
    role: str
    attempts: List[Attempt] = Field(default_factory=list)
    usage_record: Optional[UsageRecord] = None

    model_config = ConfigDict(protected_namespaces=())

    @property
    def value(self) -> Union[str, BaseModel, None]:
        return self.object if self.object is not None else self.text


@dataclass
class StreamResult:
    """
    Successful stream opening.

    Iterate the result to receive text chunks. Token usage is not reported
    for streams, so no usage record is attached.

    Provider failures after the first chunk are raised while iterating as
    a ``ProviderError``; they are not retried or escalated to another role.

    Example:
        >>> result = await orchestrator.stream_text(request)
        >>> async for chunk in result:
        ...     print(chunk, end="")
    """

    stream: AsyncIterator[str]
    provider_id: str
    model_id: str
    role: str
    attempts: List[Attempt] = field(default_factory=list)

    def __aiter__(self) -> AsyncIterator[str]:
        return self.stream

    async def collect(self) -> str:
        """Consume the whole stream and return the joined text."""
        return "".join([chunk async for chunk in self.stream])


class OrchestrationState(str, Enum):
    """
    States of one orchestration run.

    State Categories:
        - Active: PENDING (role selected), ATTEMPTING (provider call in flight)
        - Intermediate: ROLE_EXHAUSTED (role gave up, escalation pending)
        - Terminal: SUCCEEDED, ALL_ROLES_EXHAUSTED, CANCELLED
    """

    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    ROLE_EXHAUSTED = "role_exhausted"
    ALL_ROLES_EXHAUSTED = "all_roles_exhausted"
    CANCELLED = "cancelled"


VALID_TRANSITIONS: Dict[OrchestrationState, Set[OrchestrationState]] = {
    # From PENDING: call the provider, skip to the next role, or give up
    OrchestrationState.PENDING: {
        OrchestrationState.ATTEMPTING,
        OrchestrationState.PENDING,           # Credentials missing, next role
        OrchestrationState.ROLE_EXHAUSTED,    # Role configuration invalid
        OrchestrationState.ALL_ROLES_EXHAUSTED,
        OrchestrationState.CANCELLED,
    },
    # From ATTEMPTING: retry, succeed, or abandon the role
    OrchestrationState.ATTEMPTING: {
        OrchestrationState.ATTEMPTING,        # Retry same role
        OrchestrationState.SUCCEEDED,
        OrchestrationState.ROLE_EXHAUSTED,
        OrchestrationState.CANCELLED,
    },
    # From ROLE_EXHAUSTED: escalate or finish
    OrchestrationState.ROLE_EXHAUSTED: {
        OrchestrationState.PENDING,
        OrchestrationState.ALL_ROLES_EXHAUSTED,
        OrchestrationState.CANCELLED,
    },
    OrchestrationState.SUCCEEDED: set(),
    OrchestrationState.ALL_ROLES_EXHAUSTED: set(),
    OrchestrationState.CANCELLED: set(),
}

TERMINAL_STATES = {
    OrchestrationState.SUCCEEDED,
    OrchestrationState.ALL_ROLES_EXHAUSTED,
    OrchestrationState.CANCELLED,
}


def can_transition(from_state: OrchestrationState, to_state: OrchestrationState) -> bool:
    """
    Check if a run state transition is valid.

    Example:
        >>> can_transition(OrchestrationState.ATTEMPTING, OrchestrationState.SUCCEEDED)
        True
        >>> can_transition(OrchestrationState.SUCCEEDED, OrchestrationState.ATTEMPTING)
        False
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())


class RunStateMachine:
    """
    Tracks the state of one orchestration run and logs every transition.

    The run starts in ``PENDING`` for the first role of its sequence.
    """

    def __init__(self, logger: Any, first_role: Optional[str] = None):
        self._logger = logger
        self.state = OrchestrationState.PENDING
        self.role = first_role
        self.attempt_number = 0
        self.history: List[Tuple[OrchestrationState, Optional[str], int]] = [
            (self.state, self.role, self.attempt_number)
        ]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(
        self,
        to_state: OrchestrationState,
        *,
        role: Optional[str] = None,
        attempt_number: Optional[int] = None,
    ) -> None:
        """
        Move to ``to_state``.

        Raises:
            InvalidStateTransitionError: If the transition table forbids it
        """
        if not can_transition(self.state, to_state):
            raise InvalidStateTransitionError(self.state.value, to_state.value)

        from_state = self.state
        if role is not None and role != self.role:
            self.role = role
            self.attempt_number = 0
        if attempt_number is not None:
            self.attempt_number = attempt_number
        self.state = to_state
        self.history.append((self.state, self.role, self.attempt_number))

        self._logger.debug(
            "state_transition",
            from_state=from_state.value,
            to_state=to_state.value,
            role=self.role,
            attempt=self.attempt_number,
        )


__all__ = [
    "AttemptOutcome",
    "Attempt",
    "CanonicalResult",
    "StreamResult",
    "OrchestrationState",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "can_transition",
    "RunStateMachine",
]
