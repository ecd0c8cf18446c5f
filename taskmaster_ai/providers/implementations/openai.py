"""
OpenAI Adapter Implementations

Adapter for OpenAI models via the official OpenAI Python SDK, plus the
backends that expose an OpenAI-compatible chat completions API (xAI,
OpenRouter, Perplexity, Mistral, Ollama) and Azure OpenAI.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Type

from pydantic import BaseModel

from taskmaster_ai.exceptions import InvalidRequestError
from taskmaster_ai.providers.base import BaseAdapter, Messages
from taskmaster_ai.providers.interfaces import ProviderId, RoleBinding, TokenUsage


class OpenAIAdapter(BaseAdapter):
    """Adapter for OpenAI GPT models using the official SDK."""

    DEFAULT_BASE_URL: Optional[str] = None
    # "tools" (forced function call), "json_schema" or "json_object"
    OBJECT_MODE: str = "tools"

    def __init__(self, *, timeout_seconds: Optional[float] = None):
        super().__init__(timeout_seconds=timeout_seconds)

        try:
            import openai
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise ImportError(
                "openai package not installed. Install it with: pip install openai"
            ) from exc

        self._openai_module = openai

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.OPENAI

    def _client_kwargs(self, binding: RoleBinding, api_key: Optional[str]) -> Dict[str, Any]:
        client_kwargs: Dict[str, Any] = {
            "api_key": api_key,
            # Retries are owned by the orchestrator's retry policy
            "max_retries": 0,
        }
        if self.timeout_seconds:
            client_kwargs["timeout"] = self.timeout_seconds
        base_url = binding.base_url or self.DEFAULT_BASE_URL
        if base_url:
            client_kwargs["base_url"] = base_url
        return client_kwargs

    def _client(self, binding: RoleBinding, api_key: Optional[str]):
        return self._openai_module.AsyncOpenAI(**self._client_kwargs(binding, api_key))

    def _build_chat_params(self, binding: RoleBinding, messages: Messages) -> Dict[str, Any]:
        return {
            "model": binding.model_id,
            "messages": messages,
            "max_tokens": binding.parameters.max_tokens,
            "temperature": binding.parameters.temperature,
        }

    async def _complete_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> Tuple[str, TokenUsage]:
        async with self._client(binding, api_key) as client:
            completion = await client.chat.completions.create(
                **self._build_chat_params(binding, messages)
            )
        return _first_message_content(completion), _usage_from(completion)

    async def _complete_object(
        self,
        binding: RoleBinding,
        messages: Messages,
        schema: Type[BaseModel],
        object_name: str,
        api_key: Optional[str],
    ) -> Tuple[Any, TokenUsage]:
        params = self._build_chat_params(binding, messages)
        json_schema = schema.model_json_schema()

        if self.OBJECT_MODE == "tools":
            params["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": object_name,
                        "description": f"Return the {object_name} as structured data",
                        "parameters": json_schema,
                    },
                }
            ]
            params["tool_choice"] = {"type": "function", "function": {"name": object_name}}
        elif self.OBJECT_MODE == "json_schema":
            params["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": object_name, "schema": json_schema},
            }
        else:
            params["response_format"] = {"type": "json_object"}
            params["messages"] = _with_schema_instruction(messages, object_name, json_schema)

        async with self._client(binding, api_key) as client:
            completion = await client.chat.completions.create(**params)
        usage = _usage_from(completion)

        message = completion.choices[0].message if completion.choices else None
        tool_calls = getattr(message, "tool_calls", None) or []
        if tool_calls:
            arguments = tool_calls[0].function.arguments
            try:
                return json.loads(arguments), usage
            except (TypeError, ValueError):
                return arguments, usage
        return _first_message_content(completion), usage

    async def _stream_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> AsyncIterator[str]:
        params = self._build_chat_params(binding, messages)
        params["stream"] = True
        # The client stays open until the generator finishes or is closed
        async with self._client(binding, api_key) as client:
            stream = await client.chat.completions.create(**params)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = getattr(chunk.choices[0], "delta", None)
                text_piece = getattr(delta, "content", None) if delta is not None else None
                if text_piece:
                    yield text_piece


class XAIAdapter(OpenAIAdapter):
    """xAI Grok models through the OpenAI-compatible endpoint."""

    DEFAULT_BASE_URL = "https://api.x.ai/v1"

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.XAI


class OpenRouterAdapter(OpenAIAdapter):
    """OpenRouter model gateway."""

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.OPENROUTER


class PerplexityAdapter(OpenAIAdapter):
    """
    Perplexity Sonar models.

    Perplexity has no tool use; structured output goes through its
    ``json_schema`` response format and cannot be re-asked.
    """

    DEFAULT_BASE_URL = "https://api.perplexity.ai"
    OBJECT_MODE = "json_schema"
    SUPPORTS_REPAIR = False

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.PERPLEXITY


class MistralAdapter(OpenAIAdapter):
    """Mistral models through the OpenAI-compatible endpoint."""

    DEFAULT_BASE_URL = "https://api.mistral.ai/v1"

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.MISTRAL


class OllamaAdapter(OpenAIAdapter):
    """
    Local Ollama server.

    Keyless: the SDK still requires a non-empty key string, so a
    placeholder is sent when none is configured.
    """

    DEFAULT_BASE_URL = "http://localhost:11434/v1"
    OBJECT_MODE = "json_object"
    SUPPORTS_REPAIR = False

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.OLLAMA

    def _client_kwargs(self, binding: RoleBinding, api_key: Optional[str]) -> Dict[str, Any]:
        return super()._client_kwargs(binding, api_key or "ollama")


class AzureOpenAIAdapter(OpenAIAdapter):
    """
    Azure OpenAI deployments.

    The role's ``base_url`` is the Azure endpoint and the model id is the
    deployment name.
    """

    API_VERSION = "2024-06-01"

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.AZURE

    def _client(self, binding: RoleBinding, api_key: Optional[str]):
        if not binding.base_url:
            raise InvalidRequestError(
                f"Azure OpenAI requires a base_url (endpoint) for the '{binding.role.value}' role",
                provider_id=self.provider_id.value,
            )
        client_kwargs: Dict[str, Any] = {
            "api_key": api_key,
            "azure_endpoint": binding.base_url,
            "api_version": self.API_VERSION,
            "max_retries": 0,
        }
        if self.timeout_seconds:
            client_kwargs["timeout"] = self.timeout_seconds
        return self._openai_module.AsyncAzureOpenAI(**client_kwargs)


def _first_message_content(completion: Any) -> str:
    if not getattr(completion, "choices", None):
        return ""
    message = completion.choices[0].message
    return getattr(message, "content", None) or ""


def _usage_from(completion: Any) -> TokenUsage:
    usage = getattr(completion, "usage", None)
    prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
    completion_tokens = getattr(usage, "completion_tokens", 0) or 0
    total_tokens = getattr(usage, "total_tokens", 0) or (prompt_tokens + completion_tokens)
    return TokenUsage(
        input_tokens=prompt_tokens,
        output_tokens=completion_tokens,
        total_tokens=total_tokens,
    )


def _with_schema_instruction(
    messages: Messages, object_name: str, json_schema: Dict[str, Any]
) -> Messages:
    instruction = (
        f"Respond only with a JSON object named {object_name} that matches this "
        f"JSON schema:\n{json.dumps(json_schema)}"
    )
    return [{"role": "system", "content": instruction}] + list(messages)


__all__ = [
    "OpenAIAdapter",
    "XAIAdapter",
    "OpenRouterAdapter",
    "PerplexityAdapter",
    "MistralAdapter",
    "OllamaAdapter",
    "AzureOpenAIAdapter",
]
