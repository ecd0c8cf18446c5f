"""
Routing - role bindings, credential gating and retry policy.

Components:
    - CredentialResolver: session/environment/.env API key lookup
    - RoleConfigResolver: role -> provider/model/parameters
    - RetryPolicy: retryable vs fatal classification and backoff
"""

from taskmaster_ai.routing.credentials import CredentialResolver, is_placeholder_key
from taskmaster_ai.routing.retry import RETRYABLE_ERRORS, RetryPolicy
from taskmaster_ai.routing.roles import (
    DEFAULT_BINDINGS,
    DEFAULT_ROLE_SEQUENCES,
    RoleConfigResolver,
    parse_role,
)

__all__ = [
    "CredentialResolver",
    "is_placeholder_key",
    "RetryPolicy",
    "RETRYABLE_ERRORS",
    "RoleConfigResolver",
    "DEFAULT_BINDINGS",
    "DEFAULT_ROLE_SEQUENCES",
    "parse_role",
]
