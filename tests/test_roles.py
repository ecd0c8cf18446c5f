"""
Tests for role binding resolution and role sequences.
"""

from __future__ import annotations

import pytest

from fakes import make_config
from taskmaster_ai.config import ModelsConfig, RoleModelConfig, TaskmasterConfig
from taskmaster_ai.exceptions import ConfigurationError
from taskmaster_ai.providers import ProviderId, Role
from taskmaster_ai.routing import RoleConfigResolver, parse_role


def _resolver(config: TaskmasterConfig) -> RoleConfigResolver:
    return RoleConfigResolver(config_loader=lambda root: config)


def test_defaults_used_without_configuration() -> None:
    resolver = _resolver(TaskmasterConfig())

    main = resolver.resolve(Role.MAIN)
    research = resolver.resolve("research")
    fallback = resolver.resolve(Role.FALLBACK)

    assert (main.provider_id, main.model_id) == (ProviderId.ANTHROPIC, "claude-3-7-sonnet-20250219")
    assert (research.provider_id, research.model_id) == (ProviderId.PERPLEXITY, "sonar-pro")
    assert (fallback.provider_id, fallback.model_id) == (
        ProviderId.ANTHROPIC,
        "claude-3-5-sonnet-20241022",
    )
    assert research.parameters.temperature == 0.1


def test_configured_binding_is_used() -> None:
    config = TaskmasterConfig(
        models=ModelsConfig(
            main=RoleModelConfig(
                provider="OpenAI", model="gpt-4o-mini", max_tokens=2000, temperature=0.7
            )
        )
    )

    binding = _resolver(config).resolve(Role.MAIN)

    assert binding.role is Role.MAIN
    assert binding.provider_id is ProviderId.OPENAI
    assert binding.model_id == "gpt-4o-mini"
    assert binding.parameters.max_tokens == 2000
    assert binding.parameters.temperature == 0.7


def test_max_tokens_clamped_to_model_limit() -> None:
    config = TaskmasterConfig(
        models=ModelsConfig(main=RoleModelConfig(provider="openai", model="gpt-4o", max_tokens=50000))
    )

    binding = _resolver(config).resolve(Role.MAIN)

    assert binding.parameters.max_tokens == 16384


def test_unknown_model_keeps_requested_max_tokens() -> None:
    config = TaskmasterConfig(
        models=ModelsConfig(
            main=RoleModelConfig(provider="openai", model="gpt-experimental", max_tokens=50000)
        )
    )

    assert _resolver(config).resolve(Role.MAIN).parameters.max_tokens == 50000


def test_partial_role_config_falls_back_to_defaults() -> None:
    config = TaskmasterConfig(models=ModelsConfig(research=RoleModelConfig(provider="openai")))

    binding = _resolver(config).resolve(Role.RESEARCH)

    assert binding.provider_id is ProviderId.PERPLEXITY
    assert binding.model_id == "sonar-pro"


def test_unknown_provider_raises_configuration_error() -> None:
    config = make_config(main=("acme", "model-x"))

    with pytest.raises(ConfigurationError, match="acme"):
        _resolver(config).resolve(Role.MAIN)


def test_invalid_temperature_raises_configuration_error() -> None:
    config = TaskmasterConfig(
        models=ModelsConfig(
            main=RoleModelConfig(provider="openai", model="gpt-4o", temperature=5.0)
        )
    )

    with pytest.raises(ConfigurationError, match="main"):
        _resolver(config).resolve(Role.MAIN)


def test_parse_role_rejects_unknown_names() -> None:
    assert parse_role("fallback") is Role.FALLBACK
    with pytest.raises(ConfigurationError, match="planner"):
        parse_role("planner")


@pytest.mark.parametrize(
    "initial,expected",
    [
        (Role.MAIN, ["main", "fallback", "research"]),
        (Role.RESEARCH, ["research", "fallback", "main"]),
        (Role.FALLBACK, ["fallback", "main", "research"]),
    ],
)
def test_default_role_sequences(initial: Role, expected) -> None:
    assert _resolver(TaskmasterConfig()).role_sequence(initial) == expected


def test_configured_role_sequence_is_returned_as_written() -> None:
    config = make_config(role_sequence=["research", "main"])

    assert _resolver(config).role_sequence(Role.MAIN) == ["research", "main"]


def test_base_url_is_carried_into_binding() -> None:
    config = TaskmasterConfig(
        models=ModelsConfig(
            main=RoleModelConfig(
                provider="ollama", model="llama3", base_url="http://gpu-box:11434/v1"
            )
        )
    )

    binding = _resolver(config).resolve(Role.MAIN)

    assert binding.base_url == "http://gpu-box:11434/v1"
