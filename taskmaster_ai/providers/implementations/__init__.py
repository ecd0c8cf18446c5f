"""
Adapter implementations for the supported AI backends

Exports:
    - AnthropicAdapter: Anthropic Claude
    - OpenAIAdapter: OpenAI GPT models
    - XAIAdapter, OpenRouterAdapter, PerplexityAdapter, MistralAdapter,
      OllamaAdapter: OpenAI-compatible backends
    - AzureOpenAIAdapter: Azure OpenAI deployments
    - GoogleAdapter: Google Gemini models
"""

from taskmaster_ai.providers.implementations.anthropic import AnthropicAdapter
from taskmaster_ai.providers.implementations.google import GoogleAdapter
from taskmaster_ai.providers.implementations.openai import (
    AzureOpenAIAdapter,
    MistralAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    PerplexityAdapter,
    XAIAdapter,
)

__all__ = [
    "AnthropicAdapter",
    "GoogleAdapter",
    "OpenAIAdapter",
    "XAIAdapter",
    "OpenRouterAdapter",
    "PerplexityAdapter",
    "MistralAdapter",
    "OllamaAdapter",
    "AzureOpenAIAdapter",
]
