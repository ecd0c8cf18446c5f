"""
Configuration loading for the AI orchestration engine.

Values are resolved with the following precedence:

1. Environment variables (e.g., TASKMASTER_MAX_RETRIES)
2. The project configuration file: ``TASKMASTER_CONFIG_FILE`` if set, else
   ``.taskmaster/config.toml`` or ``taskmaster.toml`` in the project root
3. Built-in defaults

Configuration is loaded once per project root and then treated as
immutable; ``reload=True`` or ``clear_config_cache()`` force a fresh read.

Example ``.taskmaster/config.toml``::

    [models.main]
    provider = "openai"
    model = "gpt-4o"
    max_tokens = 16000
    temperature = 0.2

    [orchestration]
    role_sequence = ["main", "fallback", "research"]
    max_retries = 2

    [costs.openai."gpt-4o-2024-11-20"]
    input = 2.5
    output = 10.0
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from taskmaster_ai.config.catalog import MODEL_CATALOG, ModelSpec, lookup_model_spec
from taskmaster_ai.exceptions import ConfigurationError
from taskmaster_ai.providers.interfaces import ProviderId

__all__ = [
    "ModelSpec",
    "MODEL_CATALOG",
    "RoleModelConfig",
    "ModelsConfig",
    "OrchestrationSettings",
    "GlobalSettings",
    "TaskmasterConfig",
    "load_config",
    "load_project_config",
    "clear_config_cache",
]


CONFIG_FILE_CANDIDATES = (Path(".taskmaster") / "config.toml", Path("taskmaster.toml"))
DEFAULT_USER_ID = "1234567890"


class RoleModelConfig(BaseModel):
    """
    Model selection for one role as written in the project file.

    ``provider`` stays a plain string here; it is checked against the closed
    provider set when a binding is resolved so that a bad entry only disables
    its own role.
    """

    provider: Optional[str] = Field(None, description="Provider identifier")
    model: Optional[str] = Field(None, description="Model identifier")
    max_tokens: Optional[int] = Field(None, description="Output token budget")
    temperature: Optional[float] = Field(None, description="Sampling temperature")
    base_url: Optional[str] = Field(None, description="Custom API base URL")

    model_config = ConfigDict(frozen=True, extra="ignore")


class ModelsConfig(BaseModel):
    """Per-role model selection."""

    main: RoleModelConfig = Field(default_factory=RoleModelConfig)
    research: RoleModelConfig = Field(default_factory=RoleModelConfig)
    fallback: RoleModelConfig = Field(default_factory=RoleModelConfig)

    model_config = ConfigDict(frozen=True)

    def for_role(self, role: str) -> RoleModelConfig:
        return getattr(self, role)


class OrchestrationSettings(BaseModel):
    """
    Role sequence, retry budget and timeouts.

    Attributes:
        role_sequence: Explicit role order; None uses the order derived from
            the request's initial role
        max_retries: Retries per role after the first attempt
        base_delay: First backoff delay in seconds
        backoff_multiplier: Growth factor between consecutive delays
        max_delay: Upper bound for a single delay in seconds
        jitter: Random spread applied to each delay (0.0-1.0 of the delay)
        attempt_timeout: Seconds allowed for one provider call
        run_timeout: Seconds allowed for the whole run (None: unbounded)
    """

    role_sequence: Optional[List[str]] = Field(None, description="Role order override")
    max_retries: int = Field(2, description="Retries per role", ge=0, le=10)
    base_delay: float = Field(1.0, description="Initial backoff seconds", ge=0.0)
    backoff_multiplier: float = Field(2.0, description="Backoff multiplier", ge=1.0)
    max_delay: float = Field(30.0, description="Max backoff seconds", ge=0.0)
    jitter: float = Field(0.0, description="Jitter ratio", ge=0.0, le=1.0)
    attempt_timeout: Optional[float] = Field(
        120.0, description="Per-attempt timeout seconds", gt=0.0
    )
    run_timeout: Optional[float] = Field(None, description="Run timeout seconds", gt=0.0)

    model_config = ConfigDict(frozen=True)


class GlobalSettings(BaseModel):
    """Project-wide settings shared with the rest of the tool."""

    log_level: str = Field("INFO", description="Log level")
    debug: bool = Field(False, description="Debug mode")
    user_id: str = Field(DEFAULT_USER_ID, description="Fallback caller id for telemetry")
    project_name: str = Field("Taskmaster", description="Project name")

    model_config = ConfigDict(frozen=True, extra="ignore")


class TaskmasterConfig(BaseModel):
    """Top-level configuration for one project root."""

    models: ModelsConfig = Field(default_factory=ModelsConfig)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings, alias="global")
    costs: Dict[str, Dict[str, ModelSpec]] = Field(
        default_factory=dict,
        description="Project cost table overrides keyed by provider then model",
    )
    source: Optional[Path] = Field(None, description="File the values were read from")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def pricing_for(self, provider_id: ProviderId, model_id: str) -> Optional[ModelSpec]:
        """Pricing/limits for a model, project overrides first, then the catalog."""
        override = self.costs.get(provider_id.value, {}).get(model_id)
        if override is not None:
            return override
        return lookup_model_spec(provider_id, model_id)


def load_config(
    project_root: Path | str = ".",
    config_path: Optional[Path | str] = None,
) -> TaskmasterConfig:
    """
    Load configuration from file/environment/defaults without caching.

    Args:
        project_root: Directory searched for the project configuration file
        config_path: Optional explicit path to a TOML file

    Returns:
        TaskmasterConfig populated with the resolved values

    Raises:
        ConfigurationError: if an explicit path does not exist, the file is
            not valid TOML, or a value fails validation
    """
    resolved = _resolve_config_path(Path(project_root), config_path)
    raw_data = _load_toml_data(resolved)

    orchestration = dict(raw_data.get("orchestration") or {})
    global_data = dict(raw_data.get("global") or {})

    orchestration["max_retries"] = _env_or_value(
        "TASKMASTER_MAX_RETRIES", orchestration.get("max_retries"), 2
    )
    attempt_timeout = _env_or_value(
        "TASKMASTER_ATTEMPT_TIMEOUT", orchestration.get("attempt_timeout"), None
    )
    if attempt_timeout is not None:
        orchestration["attempt_timeout"] = attempt_timeout
    run_timeout = _env_or_value(
        "TASKMASTER_RUN_TIMEOUT", orchestration.get("run_timeout"), None
    )
    if run_timeout is not None:
        orchestration["run_timeout"] = run_timeout

    global_data["log_level"] = _env_or_value(
        "TASKMASTER_LOG_LEVEL", global_data.get("log_level"), "INFO"
    )
    global_data["debug"] = _env_bool("TASKMASTER_DEBUG", global_data.get("debug", False))
    global_data["user_id"] = _env_or_value(
        "TASKMASTER_USER_ID", global_data.get("user_id"), DEFAULT_USER_ID
    )

    try:
        return TaskmasterConfig(
            models=raw_data.get("models") or {},
            orchestration=orchestration,
            global_settings=global_data,
            costs=raw_data.get("costs") or {},
            source=resolved,
        )
    except ValidationError as exc:
        where = resolved or "defaults"
        raise ConfigurationError(f"Invalid configuration ({where}): {exc}") from exc


# Load-once cache keyed by resolved project root
_config_cache: Dict[str, TaskmasterConfig] = {}


def load_project_config(project_root: Path | str = ".", *, reload: bool = False) -> TaskmasterConfig:
    """
    Return the cached configuration for ``project_root``, loading it once.

    Args:
        project_root: Project directory
        reload: Re-read the file and environment even if cached

    Example:
        >>> config = load_project_config("/work/my-project")
        >>> config.orchestration.max_retries
        2
    """
    key = str(Path(project_root).resolve())
    if reload or key not in _config_cache:
        _config_cache[key] = load_config(project_root)
    return _config_cache[key]


def clear_config_cache() -> None:
    """Drop every cached project configuration."""
    _config_cache.clear()


def _resolve_config_path(
    project_root: Path, config_path: Optional[Path | str]
) -> Optional[Path]:
    """Resolve configuration path with environment fallback."""

    if config_path:
        return Path(config_path)

    env_path = os.getenv("TASKMASTER_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    for candidate in CONFIG_FILE_CANDIDATES:
        path = project_root / candidate
        if path.exists():
            return path
    return None


def _load_toml_data(resolved: Optional[Path]) -> Dict[str, Any]:
    """Load data from a TOML file if one was resolved."""

    if resolved is None:
        return {}

    if not resolved.exists():
        raise ConfigurationError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {resolved}: {exc}") from exc


def _env_bool(env_var: str, default: Any) -> bool:
    """Resolve boolean from environment with fallback."""

    value = os.getenv(env_var)
    if value is None:
        return bool(default)
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean for {env_var}: {value}")


def _env_or_value(env_var: str, value: Any, default: Any) -> Any:
    """Return environment variable value if set, otherwise the provided/default value."""

    env_value = os.getenv(env_var)
    if env_value is not None and env_value.strip():
        return env_value.strip()
    if value is not None:
        return value
    return default
