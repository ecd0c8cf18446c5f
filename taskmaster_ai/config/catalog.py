"""
Built-in Model Catalog

Static per-provider/per-model pricing (USD per 1M tokens) and output token
limits. Project configuration may extend or override entries through its
``[costs.<provider>."<model>"]`` tables.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from taskmaster_ai.providers.interfaces import ProviderId


class ModelSpec(BaseModel):
    """
    Pricing and limits for one model.

    Attributes:
        input: Cost in USD per 1M input tokens
        output: Cost in USD per 1M output tokens
        max_tokens: Largest output token budget the model accepts (if known)
    """

    input: float = Field(0.0, description="USD per 1M input tokens", ge=0.0)
    output: float = Field(0.0, description="USD per 1M output tokens", ge=0.0)
    max_tokens: Optional[int] = Field(None, description="Output token limit", gt=0)

    model_config = ConfigDict(frozen=True)


def _spec(input: float, output: float, max_tokens: Optional[int] = None) -> ModelSpec:
    return ModelSpec(input=input, output=output, max_tokens=max_tokens)


MODEL_CATALOG: Dict[ProviderId, Dict[str, ModelSpec]] = {
    ProviderId.ANTHROPIC: {
        "claude-3-7-sonnet-20250219": _spec(3.0, 15.0, 120000),
        "claude-3-5-sonnet-20241022": _spec(3.0, 15.0, 64000),
        "claude-3-5-haiku-20241022": _spec(0.8, 4.0, 64000),
        "claude-3-opus-20240229": _spec(15.0, 75.0, 64000),
        "claude-sonnet-4-20250514": _spec(3.0, 15.0, 64000),
        "claude-opus-4-20250514": _spec(15.0, 75.0, 32000),
    },
    ProviderId.OPENAI: {
        "gpt-4o": _spec(2.5, 10.0, 16384),
        "gpt-4o-mini": _spec(0.15, 0.6, 16384),
        "gpt-4.1": _spec(2.0, 8.0, 32768),
        "gpt-4.1-mini": _spec(0.4, 1.6, 32768),
        "o1": _spec(15.0, 60.0, 100000),
        "o3-mini": _spec(1.1, 4.4, 100000),
        "o4-mini": _spec(1.1, 4.4, 100000),
    },
    ProviderId.GOOGLE: {
        "gemini-2.5-pro-preview-05-06": _spec(1.25, 10.0, 65536),
        "gemini-2.5-flash-preview-04-17": _spec(0.15, 0.6, 65536),
        "gemini-2.0-flash": _spec(0.1, 0.4, 8192),
        "gemini-2.0-flash-lite": _spec(0.075, 0.3, 8192),
    },
    ProviderId.PERPLEXITY: {
        "sonar-pro": _spec(3.0, 15.0, 8700),
        "sonar": _spec(1.0, 1.0, 8700),
        "sonar-reasoning-pro": _spec(2.0, 8.0, 8700),
        "sonar-reasoning": _spec(1.0, 5.0, 8700),
        "deep-research": _spec(2.0, 8.0, 8700),
    },
    ProviderId.XAI: {
        "grok-3": _spec(3.0, 15.0, 131072),
        "grok-3-fast": _spec(5.0, 25.0, 131072),
        "grok-3-mini": _spec(0.3, 0.5, 131072),
    },
    ProviderId.OPENROUTER: {
        "anthropic/claude-3.7-sonnet": _spec(3.0, 15.0, 64000),
        "google/gemini-2.0-flash-001": _spec(0.1, 0.4, 8192),
        "openai/gpt-4o": _spec(2.5, 10.0, 16384),
        "deepseek/deepseek-chat-v3-0324": _spec(0.27, 1.1, 64000),
        "meta-llama/llama-4-maverick": _spec(0.18, 0.6, 32768),
    },
    ProviderId.OLLAMA: {
        "llama3.2": _spec(0.0, 0.0),
        "qwen3:latest": _spec(0.0, 0.0),
        "devstral:latest": _spec(0.0, 0.0),
        "mistral-small3.1:latest": _spec(0.0, 0.0),
    },
    ProviderId.MISTRAL: {
        "mistral-large-latest": _spec(2.0, 6.0, 32768),
        "mistral-small-latest": _spec(0.2, 0.6, 32768),
        "codestral-latest": _spec(0.3, 0.9, 32768),
    },
    ProviderId.AZURE: {
        "gpt-4o": _spec(2.5, 10.0, 16384),
        "gpt-4o-mini": _spec(0.15, 0.6, 16384),
        "gpt-4.1": _spec(2.0, 8.0, 32768),
    },
}


def lookup_model_spec(provider_id: ProviderId, model_id: str) -> Optional[ModelSpec]:
    """Catalog entry for ``provider_id``/``model_id``, or None if unknown."""
    return MODEL_CATALOG.get(provider_id, {}).get(model_id)


__all__ = ["ModelSpec", "MODEL_CATALOG", "lookup_model_spec"]
