"""
Provider Interface Definitions

Defines the core enums, data models and the adapter protocol shared by every
provider adapter. The set of providers is closed: adding a backend means
adding a ``ProviderId`` member plus an adapter class registered against it.
"""

from typing import (
    Any,
    AsyncIterator,
    Dict,
    Optional,
    Protocol,
    Type,
    Union,
)
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Role(str, Enum):
    """
    Abstract purpose slot bound to a concrete provider/model at call time.
    """

    MAIN = "main"
    RESEARCH = "research"
    FALLBACK = "fallback"


class ProviderId(str, Enum):
    """
    Closed set of supported AI backends.

    Each member has exactly one adapter implementation registered in
    :mod:`taskmaster_ai.providers.registry`.
    """

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"
    XAI = "xai"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"
    MISTRAL = "mistral"
    AZURE = "azure"

    @property
    def api_key_env(self) -> str:
        """Environment variable holding this provider's API key."""
        return API_KEY_ENV_VARS[self]

    @property
    def is_keyless(self) -> bool:
        """Local inference backends need no API key."""
        return self in KEYLESS_PROVIDERS


API_KEY_ENV_VARS: Dict[ProviderId, str] = {
    ProviderId.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderId.OPENAI: "OPENAI_API_KEY",
    ProviderId.GOOGLE: "GOOGLE_API_KEY",
    ProviderId.PERPLEXITY: "PERPLEXITY_API_KEY",
    ProviderId.XAI: "XAI_API_KEY",
    ProviderId.OPENROUTER: "OPENROUTER_API_KEY",
    ProviderId.OLLAMA: "OLLAMA_API_KEY",
    ProviderId.MISTRAL: "MISTRAL_API_KEY",
    ProviderId.AZURE: "AZURE_OPENAI_API_KEY",
}

KEYLESS_PROVIDERS = frozenset({ProviderId.OLLAMA})


class CallerContext(BaseModel):
    """
    Caller-scoped information travelling with every request.

    Attributes:
        session_overrides: Per-call key/value overrides (e.g. per-user API keys)
        project_root: Project directory used for config and .env lookup
        command_name: Command that triggered the call (telemetry)
        caller_id: Caller/user identifier (telemetry)
        output_type: 'cli' or 'mcp'
    """

    session_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-call environment overrides",
    )
    project_root: str = Field(".", description="Project root directory")
    command_name: str = Field("unknown", description="Invoking command name")
    caller_id: str = Field("", description="Caller identifier")
    output_type: str = Field("cli", description="Output surface ('cli' or 'mcp')")

    model_config = ConfigDict(frozen=True)


class CanonicalRequest(BaseModel):
    """
    Provider-agnostic generation request.

    Immutable once constructed. ``response_schema`` switches the run to
    object mode; the adapters validate provider output against it.

    Example:
        >>> request = CanonicalRequest(
        ...     role=Role.MAIN,
        ...     system_prompt="You are a planning assistant",
        ...     user_prompt="Break this PRD into tasks",
        ...     caller_context=CallerContext(command_name="parse-prd"),
        ... )
    """

    role: Role = Field(Role.MAIN, description="Initial role")
    system_prompt: Optional[str] = Field(None, description="System instructions")
    user_prompt: str = Field(..., description="User prompt", min_length=1)
    response_schema: Optional[Type[BaseModel]] = Field(
        None,
        description="Pydantic model describing the expected object",
    )
    object_name: str = Field(
        "generated_object",
        description="Tool/object name used for structured output",
        min_length=1,
    )
    caller_context: CallerContext = Field(default_factory=CallerContext)

    model_config = ConfigDict(frozen=True)

    @field_validator("user_prompt")
    @classmethod
    def _reject_blank_prompt(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("User prompt content is missing.")
        return value

    @property
    def is_object_request(self) -> bool:
        return self.response_schema is not None

    def messages(self) -> list[Dict[str, str]]:
        """Chat-style message list (system first when present)."""
        messages: list[Dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self.user_prompt})
        return messages


class GenerationParameters(BaseModel):
    """Sampling parameters resolved for a role."""

    max_tokens: int = Field(..., description="Maximum tokens to generate", gt=0)
    temperature: float = Field(..., description="Temperature (0-2)", ge=0.0, le=2.0)

    model_config = ConfigDict(frozen=True)


class RoleBinding(BaseModel):
    """
    Concrete provider/model/parameters selected for one role.

    Produced per call by the role configuration resolver; never cached
    across calls so configuration reloads take effect immediately.
    """

    role: Role
    provider_id: ProviderId
    model_id: str = Field(..., min_length=1)
    parameters: GenerationParameters
    base_url: Optional[str] = Field(None, description="Custom API base URL")

    model_config = ConfigDict(frozen=True, protected_namespaces=())


class CredentialCheckResult(BaseModel):
    """
    Outcome of an API key lookup.

    ``api_key`` is kept out of ``repr`` and serialisation so results can be
    logged safely.
    """

    provider_id: str
    available: bool
    reason: Optional[str] = None
    source: Optional[str] = Field(
        None, description="Where the key was found: session, environment, dotenv"
    )
    api_key: Optional[str] = Field(None, repr=False, exclude=True)

    model_config = ConfigDict(frozen=True)


class TokenUsage(BaseModel):
    """Normalized token accounting."""

    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _fill_total(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("total_tokens"):
            data = dict(data)
            data["total_tokens"] = (data.get("input_tokens") or 0) + (
                data.get("output_tokens") or 0
            )
        return data

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ProviderResult(BaseModel):
    """
    Normalized adapter output.

    ``text`` is set for text calls, ``object`` (a validated schema instance)
    for object calls.
    """

    text: Optional[str] = None
    object: Optional[BaseModel] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @property
    def value(self) -> Union[str, BaseModel, None]:
        return self.object if self.object is not None else self.text


class ProviderAdapter(Protocol):
    """
    Interface every provider adapter implements.

    Adapters perform exactly one outbound call per invocation (plus at most
    one repair call in object mode) and raise errors from
    :mod:`taskmaster_ai.exceptions`.
    """

    @property
    def provider_id(self) -> ProviderId:
        ...

    async def generate_text(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        *,
        api_key: Optional[str],
    ) -> ProviderResult:
        ...

    async def generate_object(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        schema: Type[BaseModel],
        *,
        api_key: Optional[str],
    ) -> ProviderResult:
        ...

    def stream_text(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        *,
        api_key: Optional[str],
    ) -> AsyncIterator[str]:
        ...


__all__ = [
    "Role",
    "ProviderId",
    "API_KEY_ENV_VARS",
    "KEYLESS_PROVIDERS",
    "CallerContext",
    "CanonicalRequest",
    "GenerationParameters",
    "RoleBinding",
    "CredentialCheckResult",
    "TokenUsage",
    "ProviderResult",
    "ProviderAdapter",
]
