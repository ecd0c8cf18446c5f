"""
Base Adapter Implementation

Abstract base class providing the behaviour shared by all provider adapters:
SDK error classification, structured-output validation with a single repair
re-ask, and clean error message extraction.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from taskmaster_ai.exceptions import (
    AuthError,
    InvalidRequestError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TransientNetworkError,
)
from taskmaster_ai.observability import get_logger
from taskmaster_ai.providers.interfaces import (
    CanonicalRequest,
    ProviderId,
    ProviderResult,
    RoleBinding,
    TokenUsage,
)

logger = get_logger(__name__)

Messages = List[Dict[str, str]]

_TOOL_UNSUPPORTED_PATTERNS: Tuple[str, ...] = (
    "no endpoints found that support tool use",
    "does not support tool_use",
    "tool use is not supported",
    "tools are not supported",
    "function calling is not supported",
)
_RATE_LIMIT_PATTERNS: Tuple[str, ...] = ("rate limit", "too many requests")
_UNAVAILABLE_PATTERNS: Tuple[str, ...] = (
    "overloaded",
    "service temporarily unavailable",
    "service unavailable",
)
_TRANSIENT_PATTERNS: Tuple[str, ...] = (
    "timeout",
    "timed out",
    "network error",
    "connection reset",
    "connection error",
)
_AUTH_PATTERNS: Tuple[str, ...] = (
    "invalid api key",
    "invalid x-api-key",
    "incorrect api key",
    "unauthorized",
    "authentication",
    "permission denied",
)


def extract_error_message(error: BaseException) -> str:
    """
    Extract a concise, user-facing message from a provider SDK error.

    Prefers nested ``error.message`` payloads returned by the HTTP APIs
    over the SDK's generic top-level string.

    Args:
        error: Exception raised by an SDK or adapter

    Returns:
        Best available message
    """
    body = getattr(error, "body", None)
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            body = None
    if isinstance(body, dict):
        nested = body.get("error")
        if isinstance(nested, dict) and nested.get("message"):
            return str(nested["message"])
        if body.get("message"):
            return str(body["message"])

    nested_error = getattr(error, "error", None)
    if isinstance(nested_error, dict) and nested_error.get("message"):
        return str(nested_error["message"])

    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message

    text = str(error)
    return text or "An unknown AI service error occurred."


class BaseAdapter(ABC):
    """
    Abstract provider adapter.

    Subclasses implement the three raw calls against their SDK:

    - ``_complete_text()``
    - ``_complete_object()``
    - ``_stream_text()``

    and may set ``SUPPORTS_REPAIR = False`` when the backend cannot be
    re-asked to fix invalid structured output.

    Example:
        >>> class EchoAdapter(BaseAdapter):
        ...     provider_id = ProviderId.OLLAMA
        ...
        ...     async def _complete_text(self, binding, messages, api_key):
        ...         return messages[-1]["content"], TokenUsage()
    """

    SUPPORTS_REPAIR: bool = True

    def __init__(self, *, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds

    @property
    @abstractmethod
    def provider_id(self) -> ProviderId:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public adapter contract
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        *,
        api_key: Optional[str],
    ) -> ProviderResult:
        """
        Generate plain text for the request.

        Raises:
            ProviderError: Classified provider failure
        """
        try:
            text, usage = await self._complete_text(binding, request.messages(), api_key)
        except ProviderError:
            raise
        except Exception as exc:
            raise self.classify_error(exc) from exc
        return ProviderResult(text=text, usage=usage)

    async def generate_object(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        schema: Type[BaseModel],
        *,
        api_key: Optional[str],
    ) -> ProviderResult:
        """
        Generate a structured object validated against ``schema``.

        One repair call is made when the first output does not validate and
        the adapter supports re-asking; otherwise validation failures are
        fatal ``InvalidRequestError``.
        """
        messages = request.messages()
        raw, usage = await self._call_object(binding, request, messages, schema, api_key)
        try:
            return ProviderResult(object=self._validate_object(schema, raw), usage=usage)
        except ValidationError as exc:
            if not self.SUPPORTS_REPAIR:
                raise InvalidRequestError(
                    f"{self.provider_id.value} output for '{request.object_name}' "
                    f"failed schema validation: {exc.error_count()} error(s)",
                    provider_id=self.provider_id.value,
                ) from exc
            logger.warning(
                "object_validation_failed_repairing",
                provider=self.provider_id.value,
                model=binding.model_id,
                errors=exc.error_count(),
            )
            repair_messages = messages + [
                {"role": "assistant", "content": self._dump_raw(raw)},
                {"role": "user", "content": self._repair_prompt(request, exc)},
            ]

        raw, repair_usage = await self._call_object(
            binding, request, repair_messages, schema, api_key
        )
        usage = usage + repair_usage
        try:
            return ProviderResult(object=self._validate_object(schema, raw), usage=usage)
        except ValidationError as exc:
            raise InvalidRequestError(
                f"{self.provider_id.value} output for '{request.object_name}' "
                f"failed schema validation after repair: {exc.error_count()} error(s)",
                provider_id=self.provider_id.value,
            ) from exc

    async def stream_text(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        *,
        api_key: Optional[str],
    ) -> AsyncIterator[str]:
        """Stream text chunks; errors are classified like ``generate_text``."""
        stream = self._stream_text(binding, request.messages(), api_key)
        try:
            async for chunk in stream:
                if chunk:
                    yield chunk
        except ProviderError:
            raise
        except Exception as exc:
            raise self.classify_error(exc) from exc
        finally:
            # Early close releases the provider stream and its SDK client
            await stream.aclose()

    # ------------------------------------------------------------------
    # Provider-specific hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _complete_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> Tuple[str, TokenUsage]:
        raise NotImplementedError

    async def _complete_object(
        self,
        binding: RoleBinding,
        messages: Messages,
        schema: Type[BaseModel],
        object_name: str,
        api_key: Optional[str],
    ) -> Tuple[Any, TokenUsage]:
        raise InvalidRequestError(
            f"Object generation is not supported by provider {self.provider_id.value}",
            provider_id=self.provider_id.value,
        )

    async def _stream_text(
        self,
        binding: RoleBinding,
        messages: Messages,
        api_key: Optional[str],
    ) -> AsyncIterator[str]:
        # Non-streaming backends yield the full completion as one chunk.
        text, _ = await self._complete_text(binding, messages, api_key)
        yield text

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call_object(
        self,
        binding: RoleBinding,
        request: CanonicalRequest,
        messages: Messages,
        schema: Type[BaseModel],
        api_key: Optional[str],
    ) -> Tuple[Any, TokenUsage]:
        try:
            return await self._complete_object(
                binding, messages, schema, request.object_name, api_key
            )
        except ProviderError:
            raise
        except Exception as exc:
            classified = self.classify_error(exc)
            if _first_match(str(classified).lower(), _TOOL_UNSUPPORTED_PATTERNS):
                raise InvalidRequestError(
                    f"Model '{binding.model_id}' via provider '{self.provider_id.value}' "
                    "does not support the 'tool use' required for object generation. "
                    f"Configure a model that supports tool/function calling for the "
                    f"'{binding.role.value}' role.",
                    provider_id=self.provider_id.value,
                    status_code=classified.status_code,
                ) from exc
            raise classified from exc

    def _validate_object(self, schema: Type[BaseModel], raw: Any) -> BaseModel:
        if isinstance(raw, schema):
            return raw
        if isinstance(raw, (str, bytes)):
            return schema.model_validate_json(_strip_code_fence(raw))
        return schema.model_validate(raw)

    @staticmethod
    def _dump_raw(raw: Any) -> str:
        if isinstance(raw, str):
            return raw
        try:
            return json.dumps(raw)
        except (TypeError, ValueError):
            return str(raw)

    @staticmethod
    def _repair_prompt(request: CanonicalRequest, exc: ValidationError) -> str:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()[:10]
        )
        return (
            f"The previous {request.object_name} did not match the required schema "
            f"({problems}). Respond again with a corrected {request.object_name} "
            "that satisfies the schema exactly."
        )

    def classify_error(self, error: BaseException) -> ProviderError:
        """
        Map an SDK exception onto the provider error taxonomy.

        Classification order: existing taxonomy errors, built-in timeouts,
        HTTP status codes, SDK exception type names, then message patterns.
        Unrecognised failures become a fatal ``ProviderError``.
        """
        if isinstance(error, ProviderError):
            return error

        provider = self.provider_id.value
        message = extract_error_message(error)
        status_code = _status_code_of(error)

        if isinstance(error, (TimeoutError, ConnectionError)):
            return TransientNetworkError(message, provider_id=provider, status_code=status_code)

        if status_code is not None:
            if status_code in (401, 403):
                return AuthError(message, provider_id=provider, status_code=status_code)
            if status_code == 429:
                return RateLimitError(message, provider_id=provider, status_code=status_code)
            if status_code == 408:
                return TransientNetworkError(message, provider_id=provider, status_code=status_code)
            if status_code >= 500:
                return ProviderUnavailableError(message, provider_id=provider, status_code=status_code)
            if 400 <= status_code < 500:
                return InvalidRequestError(message, provider_id=provider, status_code=status_code)

        error_type = type(error).__name__
        if "RateLimit" in error_type or "ResourceExhausted" in error_type:
            return RateLimitError(message, provider_id=provider, status_code=status_code)
        if "Timeout" in error_type or "Connection" in error_type:
            return TransientNetworkError(message, provider_id=provider, status_code=status_code)
        if "Authentication" in error_type or "PermissionDenied" in error_type:
            return AuthError(message, provider_id=provider, status_code=status_code)
        if "ServiceUnavailable" in error_type or "InternalServer" in error_type:
            return ProviderUnavailableError(message, provider_id=provider, status_code=status_code)

        lowered = message.lower()
        if _first_match(lowered, _RATE_LIMIT_PATTERNS):
            return RateLimitError(message, provider_id=provider, status_code=status_code)
        if _first_match(lowered, _UNAVAILABLE_PATTERNS):
            return ProviderUnavailableError(message, provider_id=provider, status_code=status_code)
        if _first_match(lowered, _TRANSIENT_PATTERNS):
            return TransientNetworkError(message, provider_id=provider, status_code=status_code)
        if _first_match(lowered, _AUTH_PATTERNS):
            return AuthError(message, provider_id=provider, status_code=status_code)

        return ProviderError(message, provider_id=provider, status_code=status_code)


def _status_code_of(error: BaseException) -> Optional[int]:
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    # google.api_core exceptions expose the HTTP status as ``code``
    code = getattr(error, "code", None)
    if isinstance(code, int) and 100 <= code < 600:
        return code
    return None


def _first_match(haystack: str, patterns: Tuple[str, ...]) -> Optional[str]:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None


def _strip_code_fence(raw: Any) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


__all__ = ["BaseAdapter", "extract_error_message", "Messages"]
