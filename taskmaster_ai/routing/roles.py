"""
Role Configuration Resolution

Maps an abstract role (main, research, fallback) to a concrete provider,
model and generation parameters from the project configuration, falling
back to built-in defaults per role.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from taskmaster_ai.config import TaskmasterConfig, load_project_config
from taskmaster_ai.exceptions import ConfigurationError
from taskmaster_ai.observability import get_logger
from taskmaster_ai.providers.interfaces import (
    GenerationParameters,
    ProviderId,
    Role,
    RoleBinding,
)

logger = get_logger(__name__)

ConfigLoader = Callable[[Union[Path, str]], TaskmasterConfig]

DEFAULT_BINDINGS: Dict[Role, Dict[str, object]] = {
    Role.MAIN: {
        "provider": "anthropic",
        "model": "claude-3-7-sonnet-20250219",
        "max_tokens": 64000,
        "temperature": 0.2,
    },
    Role.RESEARCH: {
        "provider": "perplexity",
        "model": "sonar-pro",
        "max_tokens": 8700,
        "temperature": 0.1,
    },
    Role.FALLBACK: {
        "provider": "anthropic",
        "model": "claude-3-5-sonnet-20241022",
        "max_tokens": 64000,
        "temperature": 0.2,
    },
}

# Escalation order by the role the request starts with
DEFAULT_ROLE_SEQUENCES: Dict[Role, List[Role]] = {
    Role.MAIN: [Role.MAIN, Role.FALLBACK, Role.RESEARCH],
    Role.RESEARCH: [Role.RESEARCH, Role.FALLBACK, Role.MAIN],
    Role.FALLBACK: [Role.FALLBACK, Role.MAIN, Role.RESEARCH],
}


def parse_role(role: Union[Role, str]) -> Role:
    """Coerce ``role`` to a ``Role``; unknown names raise ``ConfigurationError``."""
    try:
        return Role(role)
    except ValueError as exc:
        valid = ", ".join(r.value for r in Role)
        raise ConfigurationError(f"Unknown role '{role}'. Expected one of: {valid}") from exc


class RoleConfigResolver:
    """
    Resolve role bindings from project configuration.

    Bindings are rebuilt on every call; only the underlying configuration is
    cached (by the config loader).

    Example:
        >>> resolver = RoleConfigResolver()
        >>> binding = resolver.resolve(Role.RESEARCH, "/work/project")
        >>> binding.provider_id, binding.model_id
        (<ProviderId.PERPLEXITY: 'perplexity'>, 'sonar-pro')
    """

    def __init__(self, config_loader: Optional[ConfigLoader] = None):
        self._config_loader = config_loader or load_project_config

    def load_config(self, project_root: Union[Path, str] = ".") -> TaskmasterConfig:
        return self._config_loader(project_root)

    def resolve(
        self,
        role: Union[Role, str],
        project_root: Union[Path, str] = ".",
    ) -> RoleBinding:
        """
        Build the binding for ``role``.

        Raises:
            ConfigurationError: Unknown role, provider outside the supported
                set, or parameters that fail validation
        """
        role = parse_role(role)
        config = self.load_config(project_root)
        role_config = config.models.for_role(role.value)
        defaults = DEFAULT_BINDINGS[role]

        if role_config.provider and role_config.model:
            provider_name, model_id = role_config.provider, role_config.model
        else:
            provider_name, model_id = defaults["provider"], defaults["model"]
            if role_config.provider or role_config.model:
                logger.warning(
                    "role_config_incomplete_using_default",
                    role=role.value,
                    provider=role_config.provider,
                    model=role_config.model,
                    default_provider=provider_name,
                    default_model=model_id,
                )

        try:
            provider_id = ProviderId(str(provider_name).strip().lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown provider '{provider_name}' configured for role '{role.value}'"
            ) from exc

        max_tokens = role_config.max_tokens or defaults["max_tokens"]
        spec = config.pricing_for(provider_id, model_id)
        if spec is not None and spec.max_tokens and max_tokens > spec.max_tokens:
            logger.debug(
                "max_tokens_clamped",
                role=role.value,
                model=model_id,
                requested=max_tokens,
                limit=spec.max_tokens,
            )
            max_tokens = spec.max_tokens

        temperature = (
            role_config.temperature
            if role_config.temperature is not None
            else defaults["temperature"]
        )

        try:
            return RoleBinding(
                role=role,
                provider_id=provider_id,
                model_id=model_id,
                parameters=GenerationParameters(
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                base_url=role_config.base_url,
            )
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid parameters configured for role '{role.value}': {exc}"
            ) from exc

    def role_sequence(
        self,
        initial_role: Union[Role, str],
        project_root: Union[Path, str] = ".",
    ) -> List[str]:
        """
        Ordered roles to try for a request starting at ``initial_role``.

        An explicit ``orchestration.role_sequence`` is returned as written,
        so unknown names surface as per-role configuration failures.
        """
        configured = self.load_config(project_root).orchestration.role_sequence
        if configured:
            return list(configured)
        return [r.value for r in DEFAULT_ROLE_SEQUENCES[parse_role(initial_role)]]


__all__ = [
    "RoleConfigResolver",
    "DEFAULT_BINDINGS",
    "DEFAULT_ROLE_SEQUENCES",
    "parse_role",
]
