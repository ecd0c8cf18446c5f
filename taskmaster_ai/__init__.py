"""
Taskmaster AI - provider orchestration engine.

Turns one logical "generate text/object" request into a resilient,
multi-provider call sequence: role bindings from project configuration,
API-key gating, retry with backoff, ordered fallback across roles and
per-run cost telemetry.

Example:
    >>> from taskmaster_ai import generate_text_service
    >>> result = await generate_text_service(prompt="List the PRD risks", command_name="analyze")
    >>> print(result.provider_id, result.text)
"""

from taskmaster_ai.exceptions import (
    AllRolesExhaustedError,
    AuthError,
    ConfigurationError,
    InvalidRequestError,
    OrchestrationCancelledError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    RoleFailure,
    TaskmasterAIError,
    TransientNetworkError,
)
from taskmaster_ai.llm import (
    Attempt,
    AttemptOutcome,
    CanonicalResult,
    Orchestrator,
    StreamResult,
    generate_object_service,
    generate_text_service,
    get_orchestrator,
    stream_text_service,
)
from taskmaster_ai.providers import (
    CallerContext,
    CanonicalRequest,
    ProviderId,
    Role,
    TokenUsage,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "TaskmasterAIError",
    "ConfigurationError",
    "ProviderError",
    "AuthError",
    "InvalidRequestError",
    "RateLimitError",
    "TransientNetworkError",
    "ProviderUnavailableError",
    "OrchestrationCancelledError",
    "AllRolesExhaustedError",
    "RoleFailure",
    "Attempt",
    "AttemptOutcome",
    "CanonicalResult",
    "StreamResult",
    "Orchestrator",
    "get_orchestrator",
    "generate_text_service",
    "generate_object_service",
    "stream_text_service",
    "CallerContext",
    "CanonicalRequest",
    "ProviderId",
    "Role",
    "TokenUsage",
]
