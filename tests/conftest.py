"""Pytest configuration and shared fixtures."""

import pytest

from housecup.core.config import settings


@pytest.fixture(autouse=True)
def _no_llm_narratives(monkeypatch):
    """Keep tests offline: no OpenRouter key unless a test sets one."""
    monkeypatch.setattr(settings, "openrouter_api_key", None)
