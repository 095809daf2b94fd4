"""Tests for configuration validation."""

import pytest

from housecup.core.config import Constants, Settings


def test_require_credential_with_valid_value() -> None:
    """Test require_credential returns value when credential is set."""
    settings = Settings(openrouter_api_key="sk-test")

    assert settings.require_credential("openrouter_api_key", "OpenRouter API key") == "sk-test"


def test_require_credential_with_none_raises_error() -> None:
    """Test require_credential raises ValueError when credential is None."""
    settings = Settings(openrouter_api_key=None)

    with pytest.raises(ValueError, match="OpenRouter API key credential not configured"):
        settings.require_credential("openrouter_api_key", "OpenRouter API key")


def test_require_credential_with_empty_string_raises_error() -> None:
    """Test require_credential raises ValueError when credential is empty."""
    settings = Settings(openrouter_api_key="")

    with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
        settings.require_credential("openrouter_api_key", "OpenRouter API key")


def test_settings_read_environment(monkeypatch) -> None:
    """Test settings pick up environment variables."""
    monkeypatch.setenv("DEFAULT_PRIZE", "Breakfast in bed")
    monkeypatch.setenv("CHALLENGE_COMPLETION_INTERVAL_MINUTES", "15")
    monkeypatch.setenv("ENABLE_LLM_NARRATIVES", "false")

    settings = Settings()

    assert settings.default_prize == "Breakfast in bed"
    assert settings.challenge_completion_interval_minutes == 15
    assert settings.enable_llm_narratives is False


def test_domain_constants() -> None:
    """Test the thresholds the engines rely on."""
    assert Constants.MAX_POINTS_PER_TASK == 3
    assert Constants.DOMINANCE_SHARE == 0.5
    assert Constants.DOMINANCE_MIN_POINTS == 6
    assert Constants.CLOSE_CALL_MAX_MARGIN == 5
    assert Constants.INSIGHT_TIP_MIN_OCCURRENCES == 4
