"""Configuration management for housecup."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/housecup.db", description="Path to the SQLite database file")

    # OpenRouter Configuration
    openrouter_api_key: str | None = Field(default=None, description="OpenRouter API key for narrative generation")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Household Defaults
    default_timezone: str = Field(default="America/New_York", description="Timezone used when a household has none")
    default_prize: str = Field(default="Winner picks!", description="Prize text used when a household has none")

    # Narrative Configuration
    enable_llm_narratives: bool = Field(
        default=True, description="Generate LLM narratives for completed challenges when an API key is present"
    )
    narrative_history_weeks: int = Field(
        default=5, description="Number of previous completed weeks included in the narrative prompt"
    )

    # Scheduler Configuration
    challenge_completion_interval_minutes: int = Field(
        default=60, description="How often the expired-challenge completion job runs (in minutes)"
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value

    # AI Model Configuration
    model_id: str = Field(
        default="openai/gpt-4o-mini",
        description="Model ID for OpenRouter used by the narrative generator",
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # Points
    MAX_POINTS_PER_TASK: int = 3
    DAYS_PER_WEEK: int = 7

    # Narrative Angles
    COMEBACK_MIN_WINDOW_DAYS: int = 5
    COMEBACK_CHECKPOINT_DAYS: int = 4  # Cumulative score compared after the first N days
    DOMINANCE_SHARE: float = 0.5  # Share of weekly total earned on a single day
    DOMINANCE_MIN_POINTS: int = 6  # Absolute floor so 1-2 point days never count as dominant
    CLOSE_CALL_MAX_MARGIN: int = 5
    BLOWOUT_AVERAGE_FACTOR: float = 1.5
    BLOWOUT_MIN_HISTORY: int = 2

    # Insight Tips
    INSIGHT_TIP_MIN_OCCURRENCES: int = 4
    NOTABLE_TASK_MIN_OCCURRENCES: int = 3
    NOTABLE_TASK_SPIKE_FACTOR: float = 1.5

    # History
    HISTORY_CHALLENGE_LIMIT: int = 20

    # LLM Narrative
    NARRATIVE_TEMPERATURE: float = 0.8
    NARRATIVE_MAX_TOKENS: int = 150
    NARRATIVE_TIMEOUT_SECONDS: int = 60

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 500

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
