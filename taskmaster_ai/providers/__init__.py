"""
Provider Adapter Layer

Normalizes a canonical request into provider-specific SDK calls and the
provider response back into canonical text/object plus token usage.

Key Components:
    - ProviderId / Role: Closed enums for backends and role slots
    - CanonicalRequest / RoleBinding / ProviderResult: Shared data models
    - BaseAdapter: Error classification and structured-output validation
    - AdapterRegistry: One adapter per ProviderId variant

Example:
    >>> from taskmaster_ai.providers import get_adapter_registry, ProviderId
    >>> adapter = get_adapter_registry().get(ProviderId.OPENAI)
    >>> result = await adapter.generate_text(binding, request, api_key=key)
    >>> print(result.text, result.usage.total_tokens)
"""

from taskmaster_ai.providers.interfaces import (
    API_KEY_ENV_VARS,
    KEYLESS_PROVIDERS,
    CallerContext,
    CanonicalRequest,
    CredentialCheckResult,
    GenerationParameters,
    ProviderAdapter,
    ProviderId,
    ProviderResult,
    Role,
    RoleBinding,
    TokenUsage,
)
from taskmaster_ai.providers.base import BaseAdapter, extract_error_message
from taskmaster_ai.providers.registry import (
    ADAPTER_CLASSES,
    AdapterRegistry,
    get_adapter_registry,
)

__all__ = [
    "API_KEY_ENV_VARS",
    "KEYLESS_PROVIDERS",
    "CallerContext",
    "CanonicalRequest",
    "CredentialCheckResult",
    "GenerationParameters",
    "ProviderAdapter",
    "ProviderId",
    "ProviderResult",
    "Role",
    "RoleBinding",
    "TokenUsage",
    "BaseAdapter",
    "extract_error_message",
    "ADAPTER_CLASSES",
    "AdapterRegistry",
    "get_adapter_registry",
]
