"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    API_MAX_SESSIONS: int = 100  # Finished sessions beyond this are forgotten
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Provider Configuration
    PROVIDER: str = "gemini"  # Options: gemini, openai, anthropic
    GEMINI_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-flash-latest"
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TEMPERATURE: float = 0.2
    MAX_OUTPUT_TOKENS: int = 8192
    INCLUDE_THOUGHTS: bool = True
    FORCE_TOOL_CALLS: bool = True  # Model must answer with tool calls

    # Site API Configuration
    TODO_API_BASE_URL: str = "http://localhost:3000/api/v1/"
    TODO_API_TIMEOUT: float = 30.0

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
