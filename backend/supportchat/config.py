"""
Configuration settings for the support chat service.

Loads environment variables from .env file and provides typed configuration.
"""

from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Security Configuration
    SECRET_KEY: str = Field(
        default="0b6f3c1d4e2a9f8e7d6c5b4a39281706f5e4d3c2b1a09f8e7d6c5b4a3928170",
        description="Secret key for JWT",
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60 * 24, description="Access token expiration time in minutes"
    )
    ACCESS_TOKEN_COOKIE: str = Field(
        default="access_token",
        description="Cookie carrying the access token for the WebSocket handshake",
    )

    # Storage Configuration
    DATABASE_URL: str = Field(
        default="sqlite:///./data/support_chat.db", description="SQLAlchemy database URL"
    )
    DATABASE_ECHO: bool = Field(
        default=False, description="Echo SQL queries (for debugging)"
    )
    STORAGE_BACKEND: Literal["auto", "database", "memory"] = Field(
        default="auto",
        description="'database', 'memory', or 'auto' (database with in-memory fallback)",
    )

    # Completion provider Configuration
    AI_PROVIDER: Literal["openai", "ollama"] = Field(
        default="openai", description="Completion provider: 'openai' or 'ollama'"
    )
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    OPENAI_MODEL: str = Field(default="gpt-4o", description="OpenAI chat model")
    OPENAI_TIMEOUT: float = Field(
        default=60.0, description="OpenAI request timeout in seconds"
    )
    OLLAMA_HOST: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    OLLAMA_TIMEOUT: int = Field(
        default=300, description="Ollama request timeout in seconds"
    )
    TEXT_MODEL: str = Field(
        default="llama3.1:8b", description="Ollama text model for replies and titles"
    )
    REPLY_MAX_TOKENS: int = Field(default=1000, description="Max tokens per reply")
    TITLE_MAX_TOKENS: int = Field(default=15, description="Max tokens per chat title")
    COMPLETION_TEMPERATURE: float = Field(
        default=0.7, description="Sampling temperature for replies and titles"
    )

    # Chat protocol Configuration
    REPLY_DELAY_MIN_MS: int = Field(
        default=1000, description="Lower bound of the simulated reply latency"
    )
    REPLY_DELAY_MAX_MS: int = Field(
        default=2000, description="Upper bound of the simulated reply latency"
    )
    RECONNECT_DELAY_SECONDS: float = Field(
        default=2.0, description="Client reconnect delay after the socket closes"
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    ENABLE_FILE_LOGGING: bool = Field(
        default=False, description="Enable logging to file"
    )
    LOG_DIR: str = Field(default="./logs", description="Directory for log files")

    @property
    def reply_delay_range(self) -> tuple[float, float]:
        """Simulated reply latency bounds in seconds."""
        return self.REPLY_DELAY_MIN_MS / 1000, self.REPLY_DELAY_MAX_MS / 1000


# Global settings instance
settings = Settings()
