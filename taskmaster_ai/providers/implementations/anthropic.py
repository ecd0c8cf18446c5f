"""
Anthropic Adapter Implementation

Direct adapter for Anthropic Claude using the official Anthropic Python SDK.
Structured output is produced through a forced tool call whose input schema
is the requested pydantic model.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from taskmaster_ai.providers.base import BaseAdapter, Messages
from taskmaster_ai.providers.interfaces import ProviderId, RoleBinding, TokenUsage


class AnthropicAdapter(BaseAdapter):
    """Adapter for Anthropic Claude models using the official SDK."""

    def __init__(self, *, timeout_seconds: Optional[float] = None):
        super().__init__(timeout_seconds=timeout_seconds)

        try:
            import anthropic
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise ImportError(
                "anthropic package not installed. Install it with: pip install anthropic"
            ) from exc

        self._anthropic_module = anthropic

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.ANTHROPIC

    def _client(self, binding: RoleBinding, api_key: Optional[str]):
        client_kwargs: Dict[str, Any] = {
            "api_key": api_key,
            # Retries are owned by the orchestrator's retry policy
            "max_retries": 0,
        }
        if self.timeout_seconds:
            client_kwargs["timeout"] = self.timeout_seconds
        if binding.base_url:
            client_kwargs["base_url"] = binding.base_url
        return self._anthropic_module.AsyncAnthropic(**client_kwargs)

    def _build_params(self, binding: RoleBinding, messages: Messages) -> Dict[str, Any]:
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        chat: List[Dict[str, str]] = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]
        params: Dict[str, Any] = {
            "model": binding.model_id,
            "max_tokens": binding.parameters.max_tokens,
            "temperature": binding.parameters.temperature,
            "messages": chat,
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)
        return params

    async def _complete_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> Tuple[str, TokenUsage]:
        async with self._client(binding, api_key) as client:
            response = await client.messages.create(**self._build_params(binding, messages))
        output = "".join(
            getattr(block, "text", "")
            for block in (response.content or [])
            if getattr(block, "type", "text") == "text"
        )
        return output, _usage_from(response)

    async def _complete_object(
        self,
        binding: RoleBinding,
        messages: Messages,
        schema: Type[BaseModel],
        object_name: str,
        api_key: Optional[str],
    ) -> Tuple[Any, TokenUsage]:
        params = self._build_params(binding, messages)
        params["tools"] = [
            {
                "name": object_name,
                "description": f"Return the {object_name} as structured data",
                "input_schema": schema.model_json_schema(),
            }
        ]
        params["tool_choice"] = {"type": "tool", "name": object_name}
        async with self._client(binding, api_key) as client:
            response = await client.messages.create(**params)

        for block in response.content or []:
            if getattr(block, "type", None) == "tool_use":
                return block.input, _usage_from(response)
        # No tool call: hand the text back so validation decides
        text = "".join(getattr(block, "text", "") for block in (response.content or []))
        return text, _usage_from(response)

    async def _stream_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> AsyncIterator[str]:
        async with self._client(binding, api_key) as client:
            async with client.messages.stream(**self._build_params(binding, messages)) as stream:
                async for text in stream.text_stream:
                    yield text


def _usage_from(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    input_tokens = getattr(usage, "input_tokens", 0) or 0
    output_tokens = getattr(usage, "output_tokens", 0) or 0
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
    )


__all__ = ["AnthropicAdapter"]
