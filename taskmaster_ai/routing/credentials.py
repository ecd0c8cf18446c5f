"""
Credential Resolution

Decides whether a usable API key exists for a provider. Lookup order is the
call-scoped session overrides, then the process environment, then the
project's ``.env`` file. Absence of a key is an expected outcome and is
reported through ``CredentialCheckResult.available``; nothing here raises.
"""

import os
import re
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from dotenv import dotenv_values

from taskmaster_ai.observability import get_logger
from taskmaster_ai.providers.interfaces import CredentialCheckResult, ProviderId

logger = get_logger(__name__)

# Template values shipped in example .env files
_PLACEHOLDER_RE = re.compile(r"YOUR_.*_HERE")


def is_placeholder_key(value: Optional[str]) -> bool:
    """True for empty values and unedited template values like ``YOUR_KEY_HERE``."""
    if value is None or not value.strip():
        return True
    return bool(_PLACEHOLDER_RE.search(value)) or "KEY_HERE" in value


class CredentialResolver:
    """
    Resolve provider API keys from session overrides, environment and ``.env``.

    Example:
        >>> resolver = CredentialResolver()
        >>> check = resolver.resolve(ProviderId.OPENAI, {"OPENAI_API_KEY": "sk-..."}, ".")
        >>> check.available, check.source
        (True, 'session')
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize resolver.

        Args:
            environ: Environment mapping to consult (defaults to ``os.environ``)
        """
        self._environ = environ

    def resolve(
        self,
        provider_id: Union[ProviderId, str],
        session_overrides: Optional[Mapping[str, str]] = None,
        project_root: Union[Path, str] = ".",
    ) -> CredentialCheckResult:
        """
        Check whether a key is available for ``provider_id``.

        Args:
            provider_id: Provider to check
            session_overrides: Per-call key/value overrides
            project_root: Project directory holding an optional ``.env``

        Returns:
            CredentialCheckResult; ``api_key`` is populated when available
        """
        try:
            provider = ProviderId(provider_id)
        except ValueError:
            return CredentialCheckResult(
                provider_id=str(provider_id),
                available=False,
                reason=f"Unknown provider '{provider_id}'",
            )

        if provider.is_keyless:
            return CredentialCheckResult(
                provider_id=provider.value,
                available=True,
                source="keyless",
            )

        key_name = provider.api_key_env
        value, source = self._lookup(key_name, session_overrides or {}, Path(project_root))
        if is_placeholder_key(value):
            return CredentialCheckResult(
                provider_id=provider.value,
                available=False,
                reason=f"{key_name} is not set",
            )

        return CredentialCheckResult(
            provider_id=provider.value,
            available=True,
            source=source,
            api_key=value.strip(),
        )

    def _lookup(
        self,
        key_name: str,
        session_overrides: Mapping[str, str],
        project_root: Path,
    ) -> Tuple[Optional[str], Optional[str]]:
        value = session_overrides.get(key_name)
        if not is_placeholder_key(value):
            return value, "session"

        environ = self._environ if self._environ is not None else os.environ
        value = environ.get(key_name)
        if not is_placeholder_key(value):
            return value, "environment"

        value = self._read_dotenv(project_root).get(key_name)
        if not is_placeholder_key(value):
            return value, "dotenv"
        return None, None

    @staticmethod
    def _read_dotenv(project_root: Path) -> Mapping[str, Optional[str]]:
        env_path = project_root / ".env"
        if not env_path.is_file():
            return {}
        try:
            return dotenv_values(env_path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("dotenv_read_failed", path=str(env_path), error=str(exc))
            return {}


__all__ = ["CredentialResolver", "is_placeholder_key"]
