"""
Google Gemini Adapter Implementation

Adapter for Google Gemini models via the official Google Generative AI SDK.
Structured output uses the JSON response MIME type with the schema passed as
an instruction.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from taskmaster_ai.exceptions import AuthError
from taskmaster_ai.providers.base import BaseAdapter, Messages
from taskmaster_ai.providers.interfaces import ProviderId, RoleBinding, TokenUsage


class GoogleAdapter(BaseAdapter):
    """Adapter for Google Gemini models via google-generativeai SDK."""

    def __init__(self, *, timeout_seconds: Optional[float] = None):
        super().__init__(timeout_seconds=timeout_seconds)

        try:
            import google.generativeai as genai
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise ImportError(
                "google-generativeai package not installed. Install it with: pip install google-generativeai"
            ) from exc

        self.genai = genai

    @property
    def provider_id(self) -> ProviderId:
        return ProviderId.GOOGLE

    def _create_model(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
        extra_system: Optional[str] = None,
    ):
        if not api_key:
            raise AuthError(
                "Google API key not provided. Set GOOGLE_API_KEY",
                provider_id=self.provider_id.value,
            )
        # The SDK keeps its credentials in module state
        self.genai.configure(api_key=api_key)

        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        if extra_system:
            system_parts.append(extra_system)
        kwargs: Dict[str, Any] = {"model_name": binding.model_id}
        if system_parts:
            kwargs["system_instruction"] = "\n\n".join(system_parts)
        return self.genai.GenerativeModel(**kwargs)

    @staticmethod
    def _build_contents(messages: Messages) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        for message in messages:
            if message["role"] == "system":
                continue
            role = "model" if message["role"] == "assistant" else "user"
            contents.append({"role": role, "parts": [message["content"]]})
        return contents

    @staticmethod
    def _build_generation_config(binding: RoleBinding, **extra: Any) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "max_output_tokens": binding.parameters.max_tokens,
            "temperature": binding.parameters.temperature,
        }
        config.update(extra)
        return config

    def _request_options(self) -> Optional[Dict[str, Any]]:
        if self.timeout_seconds:
            return {"timeout": self.timeout_seconds}
        return None

    async def _complete_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> Tuple[str, TokenUsage]:
        model = self._create_model(binding, messages, api_key)
        response = await model.generate_content_async(
            self._build_contents(messages),
            generation_config=self._build_generation_config(binding),
            request_options=self._request_options(),
        )
        return _extract_text(response), _usage_from(response)

    async def _complete_object(
        self,
        binding: RoleBinding,
        messages: Messages,
        schema: Type[BaseModel],
        object_name: str,
        api_key: Optional[str],
    ) -> Tuple[Any, TokenUsage]:
        instruction = (
            f"Respond only with a JSON object named {object_name} that matches this "
            f"JSON schema:\n{json.dumps(schema.model_json_schema())}"
        )
        model = self._create_model(binding, messages, api_key, extra_system=instruction)
        response = await model.generate_content_async(
            self._build_contents(messages),
            generation_config=self._build_generation_config(
                binding, response_mime_type="application/json"
            ),
            request_options=self._request_options(),
        )
        return _extract_text(response), _usage_from(response)

    async def _stream_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> AsyncIterator[str]:
        model = self._create_model(binding, messages, api_key)
        stream = await model.generate_content_async(
            self._build_contents(messages),
            generation_config=self._build_generation_config(binding),
            request_options=self._request_options(),
            stream=True,
        )
        async for chunk in stream:
            text_piece = _extract_text(chunk)
            if text_piece:
                yield text_piece


def _extract_text(response: Any) -> str:
    try:
        text = response.text
    except (ValueError, AttributeError):
        # Blocked or empty candidates raise on .text
        text = None
    if text:
        return text
    pieces: List[str] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            part_text = getattr(part, "text", None)
            if part_text:
                pieces.append(part_text)
    return "".join(pieces)


def _usage_from(response: Any) -> TokenUsage:
    usage = getattr(response, "usage_metadata", None)
    input_tokens = getattr(usage, "prompt_token_count", 0) or 0
    output_tokens = getattr(usage, "candidates_token_count", 0) or 0
    total_tokens = getattr(usage, "total_token_count", 0) or (input_tokens + output_tokens)
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


__all__ = ["GoogleAdapter"]
