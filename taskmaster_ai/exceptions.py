"""
Taskmaster AI - Error Taxonomy

Exception hierarchy shared by the provider adapters, the retry policy and the
orchestrator. Provider-level errors are raised by adapters and classified
inside the orchestrator; only ``AllRolesExhaustedError`` and
``OrchestrationCancelledError`` are meant to reach callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover - typing only
    from taskmaster_ai.llm.models import Attempt


class TaskmasterAIError(Exception):
    """
    Base exception for all orchestration errors.

    Allows callers to catch every engine failure with a single clause
    when they do not care about the specific category.
    """

    pass


class ConfigurationError(TaskmasterAIError):
    """Raised when a role configuration is malformed or structurally unknown."""


# ============================================================================
# Provider Exception Hierarchy
# ============================================================================


class ProviderError(TaskmasterAIError):
    """
    Base exception for all provider-related errors.

    Errors that cannot be attributed to a more specific category are raised
    as plain ``ProviderError`` and treated as fatal for the current role.

    Attributes:
        provider_id: Provider that produced the error (if known)
        status_code: HTTP status reported by the provider SDK (if any)
    """

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider_id = provider_id
        self.status_code = status_code

    @property
    def message(self) -> str:
        return str(self)


class AuthError(ProviderError):
    """
    Raised when the provider rejects the API key.

    Indicates a bad, revoked or under-privileged key. Never retried.
    """


class InvalidRequestError(ProviderError):
    """
    Raised when the provider cannot satisfy the request as sent.

    Covers malformed parameters, unknown models, schemas the provider cannot
    honour and structured output that fails validation. Retrying with the
    same input will not help.
    """


class RateLimitError(ProviderError):
    """Raised when provider rate limits are exceeded (HTTP 429). Retryable."""


class TransientNetworkError(ProviderError):
    """Raised on timeouts and connection failures. Retryable."""


class ProviderUnavailableError(ProviderError):
    """Raised when the provider is overloaded or returns a 5xx. Retryable."""


# ============================================================================
# Run-level Errors
# ============================================================================


class OrchestrationCancelledError(TaskmasterAIError):
    """
    Raised when a run is cancelled through its cancellation signal or
    because the overall run timeout elapsed.

    Cancellation never escalates to another role and never produces a
    usage record.
    """

    def __init__(self, message: str = "Orchestration run cancelled", *, reason: str = "cancelled"):
        super().__init__(message)
        self.reason = reason


class InvalidStateTransitionError(TaskmasterAIError):
    """
    Raised when the orchestration state machine is driven into a transition
    that its transition table does not allow.

    Attributes:
        from_state: State before the attempted transition
        to_state: Requested state
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid orchestration state transition: {from_state} -> {to_state}")


@dataclass(frozen=True)
class RoleFailure:
    """
    Terminal outcome for one role of a failed run.

    Exactly one of ``error`` or ``skip_reason`` is set: ``skip_reason`` when
    the role never reached a provider call (missing credentials), ``error``
    when it did or when its configuration could not be resolved.
    """

    role: str
    provider_id: Optional[str]
    model_id: Optional[str]
    error: Optional[BaseException] = None
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    def describe(self) -> str:
        target = f"{self.provider_id or 'unknown'}/{self.model_id or 'unknown'}"
        if self.skip_reason is not None:
            return f"{self.role} ({target}) skipped: {self.skip_reason}"
        return f"{self.role} ({target}) failed: {type(self.error).__name__}: {self.error}"


class AllRolesExhaustedError(TaskmasterAIError):
    """
    Aggregate failure raised when every role in the sequence is exhausted.

    Attributes:
        role_failures: One entry per role in sequence order
        attempts: Every physical provider attempt made during the run

    Example:
        >>> try:
        ...     await orchestrator.generate_text(request)
        ... except AllRolesExhaustedError as exc:
        ...     for failure in exc.role_failures:
        ...         print(failure.describe())
    """

    def __init__(
        self,
        role_failures: Sequence[RoleFailure],
        attempts: Sequence["Attempt"] = (),
    ):
        self.role_failures: List[RoleFailure] = list(role_failures)
        self.attempts: List["Attempt"] = list(attempts)
        roles = ", ".join(f.role for f in self.role_failures) or "<none>"
        details = "; ".join(f.describe() for f in self.role_failures)
        super().__init__(
            f"AI service call failed for all configured roles [{roles}]: {details}"
        )

    @property
    def last_error(self) -> Optional[BaseException]:
        """Most recent provider error across all roles (None if every role was skipped)."""
        for failure in reversed(self.role_failures):
            if failure.error is not None:
                return failure.error
        return None


__all__ = [
    "TaskmasterAIError",
    "ConfigurationError",
    "ProviderError",
    "AuthError",
    "InvalidRequestError",
    "RateLimitError",
    "TransientNetworkError",
    "ProviderUnavailableError",
    "OrchestrationCancelledError",
    "InvalidStateTransitionError",
    "RoleFailure",
    "AllRolesExhaustedError",
]
