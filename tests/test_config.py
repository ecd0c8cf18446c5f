"""
Tests for project configuration loading.
"""

from __future__ import annotations

import pydantic
import pytest

from taskmaster_ai.config import (
    TaskmasterConfig,
    clear_config_cache,
    load_config,
    load_project_config,
)
from taskmaster_ai.exceptions import ConfigurationError
from taskmaster_ai.providers import ProviderId

SAMPLE_CONFIG = """
[models.main]
provider = "openai"
model = "gpt-4o"
max_tokens = 16000
temperature = 0.3

[models.research]
provider = "perplexity"
model = "sonar"

[orchestration]
role_sequence = ["main", "research"]
max_retries = 1
attempt_timeout = 45.0

[global]
user_id = "team-7"

[costs.openai."gpt-4o-2024-11-20"]
input = 2.5
output = 10.0
"""


def _write_config(root, content: str = SAMPLE_CONFIG, name: str = ".taskmaster/config.toml"):
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_defaults_without_config_file(tmp_path) -> None:
    config = load_config(tmp_path)

    assert config.source is None
    assert config.orchestration.max_retries == 2
    assert config.orchestration.attempt_timeout == 120.0
    assert config.orchestration.run_timeout is None
    assert config.orchestration.role_sequence is None
    assert config.global_settings.user_id == "1234567890"
    assert config.models.main.provider is None


def test_project_file_values_are_loaded(tmp_path) -> None:
    path = _write_config(tmp_path)

    config = load_config(tmp_path)

    assert config.source == path
    assert config.models.main.provider == "openai"
    assert config.models.main.temperature == 0.3
    assert config.models.for_role("research").model == "sonar"
    assert config.orchestration.role_sequence == ["main", "research"]
    assert config.orchestration.max_retries == 1
    assert config.orchestration.attempt_timeout == 45.0
    assert config.global_settings.user_id == "team-7"


def test_root_level_taskmaster_toml_is_found(tmp_path) -> None:
    _write_config(tmp_path, "[orchestration]\nmax_retries = 4\n", name="taskmaster.toml")

    assert load_config(tmp_path).orchestration.max_retries == 4


def test_environment_overrides_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    _write_config(tmp_path)
    monkeypatch.setenv("TASKMASTER_MAX_RETRIES", "5")
    monkeypatch.setenv("TASKMASTER_RUN_TIMEOUT", "300")
    monkeypatch.setenv("TASKMASTER_USER_ID", "env-user")
    monkeypatch.setenv("TASKMASTER_DEBUG", "yes")

    config = load_config(tmp_path)

    assert config.orchestration.max_retries == 5
    assert config.orchestration.run_timeout == 300.0
    assert config.global_settings.user_id == "env-user"
    assert config.global_settings.debug is True


def test_config_file_env_var_selects_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    custom = _write_config(tmp_path, "[orchestration]\nmax_retries = 0\n", name="custom.toml")
    monkeypatch.setenv("TASKMASTER_CONFIG_FILE", str(custom))

    assert load_config(tmp_path / "elsewhere").orchestration.max_retries == 0


def test_missing_explicit_file_raises(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path, config_path=tmp_path / "missing.toml")


def test_invalid_toml_raises(tmp_path) -> None:
    _write_config(tmp_path, "[models.main\nprovider = ")

    with pytest.raises(ConfigurationError, match="Invalid TOML"):
        load_config(tmp_path)


def test_invalid_value_raises(tmp_path) -> None:
    _write_config(tmp_path, "[orchestration]\nmax_retries = -1\n")

    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_config(tmp_path)


def test_invalid_boolean_env_raises(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("TASKMASTER_DEBUG", "maybe")

    with pytest.raises(ConfigurationError, match="TASKMASTER_DEBUG"):
        load_config(tmp_path)


def test_project_config_is_loaded_once(tmp_path) -> None:
    path = _write_config(tmp_path, "[orchestration]\nmax_retries = 1\n")
    first = load_project_config(tmp_path)

    path.write_text("[orchestration]\nmax_retries = 3\n")

    assert load_project_config(tmp_path) is first
    assert load_project_config(tmp_path, reload=True).orchestration.max_retries == 3

    clear_config_cache()
    path.write_text("[orchestration]\nmax_retries = 0\n")
    assert load_project_config(tmp_path).orchestration.max_retries == 0


def test_cost_overrides_take_precedence_over_catalog(tmp_path) -> None:
    _write_config(tmp_path, '[costs.openai."gpt-4o"]\ninput = 1.0\noutput = 2.0\n')

    config = load_config(tmp_path)

    override = config.pricing_for(ProviderId.OPENAI, "gpt-4o")
    assert (override.input, override.output) == (1.0, 2.0)
    catalog = config.pricing_for(ProviderId.OPENAI, "gpt-4o-mini")
    assert catalog.input == 0.15
    assert config.pricing_for(ProviderId.OPENAI, "no-such-model") is None


def test_config_is_immutable() -> None:
    config = TaskmasterConfig()

    with pytest.raises(pydantic.ValidationError):
        config.orchestration.max_retries = 9
