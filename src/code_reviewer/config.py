"""Configuration settings for the application."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    WORKSPACE_ROOT: str | None = None  # Directory to review when none is given on the command line

    # LLM Configuration
    PLANNER: str = "gemini"  # Options: gemini, openai, anthropic, tgi
    MODEL: str | None = None  # Overrides the planner's default model
    GEMINI_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    TGI_ENDPOINT: str = "http://tgi:8080/generate"

    # Review loop limits
    MAX_ROUNDS: int = Field(25, ge=1)  # Model calls per file
    MAX_RETRIES: int = Field(2, ge=0)  # Retries of a failed model call
    RETRY_BACKOFF: float = Field(0.5, ge=0)  # Seconds, doubled on every retry
    REQUEST_TIMEOUT: float = Field(60.0, gt=0)  # Seconds per model call
    FILE_DEADLINE: float | None = Field(600.0, ge=0)  # Seconds per file

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"

    def api_key_for(self, planner: str) -> str | None:
        """Return the credential configured for *planner*, if any."""
        return {
            "gemini": self.GEMINI_API_KEY,
            "openai": self.OPENAI_API_KEY,
            "anthropic": self.ANTHROPIC_API_KEY,
        }.get(planner.lower())


settings = Settings()
