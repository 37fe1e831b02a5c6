"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./automation.db"

    # OpenAI-compatible generation service
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_MAX_ATTEMPTS: int = 3

    # Generation
    IDEA_TEMPERATURE: float = 0.9
    PROMPT_TEMPERATURE: float = 0.7
    TITLE_TEMPERATURE: float = 0.8
    IDEAS_PER_CHANNEL: int = 5

    # Automation
    AUTOMATION_TIMEZONE: str = "Asia/Almaty"
    AUTOMATION_ENABLED: bool = True
    AUTOMATION_INTERVAL_SECONDS: int = 300
    CHANNELS_FILE: str = ""  # JSON list of channel templates
    SCHEDULER_JOB_ID: str = "automation-run-scheduled"
    SCHEDULER_SCHEDULE: str = "*/5 * * * *"
    SCHEDULER_TIMEZONE: str = "Etc/UTC"

    # Run ledger
    LEDGER_WRITE_ATTEMPTS: int = 3
    LEDGER_RETRY_WAIT_SECONDS: float = 0.5
    LEDGER_FLUSH_TIMEOUT_SECONDS: float = 10.0

    # Diagnostics
    DEBUG_RUNS_DEFAULT_LIMIT: int = 20
    DEBUG_RUNS_MAX_LIMIT: int = 100

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()


def require_openai_api_key(config: Settings = settings) -> str:
    """Return the configured API key or raise a configuration error."""
    api_key = (config.OPENAI_API_KEY or "").strip()
    if not api_key:
        raise ConfigError("OPENAI_API_KEY is not configured")
    return api_key
