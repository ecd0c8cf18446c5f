"""
Global pytest configuration for the orchestration engine tests

This file provides shared fixtures and enforces Python version requirements.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import structlog

# Add tests directory to sys.path to support imports from test fixtures
_tests_dir = Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

from taskmaster_ai.config import clear_config_cache  # noqa: E402
from taskmaster_ai.providers.interfaces import API_KEY_ENV_VARS  # noqa: E402

# Resolve the active structlog configuration on every call so capture_logs sees it
structlog.configure(cache_logger_on_first_use=False)

_MIN_PY_VERSION = (3, 11)

_TASKMASTER_ENV_VARS = (
    "TASKMASTER_CONFIG_FILE",
    "TASKMASTER_MAX_RETRIES",
    "TASKMASTER_ATTEMPT_TIMEOUT",
    "TASKMASTER_RUN_TIMEOUT",
    "TASKMASTER_LOG_LEVEL",
    "TASKMASTER_DEBUG",
    "TASKMASTER_USER_ID",
)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


@pytest.fixture(scope="session", autouse=True)
def register_markers(pytestconfig: pytest.Config) -> None:
    """Register project markers to prevent unknown marker warnings."""
    markers = {
        "unit": "Unit tests that should execute quickly.",
        "integration": "Integration tests hitting multiple components.",
        "slow": "Slow or high-cost tests.",
    }
    for name, description in markers.items():
        pytestconfig.addinivalue_line("markers", f"{name}: {description}")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Strip real API keys and TASKMASTER_* overrides; reset the config cache."""
    for name in list(API_KEY_ENV_VARS.values()) + list(_TASKMASTER_ENV_VARS):
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()
