"""
Shared fixtures for gateway tests.
"""

import pytest


@pytest.fixture
def clear_provider_env(monkeypatch):
    """Remove provider credentials from the environment."""
    for var in ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "OPENAI_API_KEY", "OPENAI_BASE_URL"):
        monkeypatch.delenv(var, raising=False)
