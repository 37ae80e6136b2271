"""
Settings for the orchestrator and the chats API.

Values come from the environment or a ``.env`` file; names are
case-insensitive (``OPENAI_API_KEY`` sets ``openai_api_key``).
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BACKEND_DIR = Path(__file__).resolve().parents[2]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
ENVIRONMENTS = ("development", "staging", "production")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None

    # Chats API
    database_url: str = Field(
        default_factory=lambda: f"sqlite:///{_BACKEND_DIR / 'data' / 'streamchat.db'}"
    )
    identity_header: str = "X-User-Id"

    # Where the orchestrator commits finished turns
    chat_api_base_url: str = "http://localhost:3000"
    persist_partial_answers: bool = False

    # gpt-4o: OpenAI-compatible chat completions (OpenAI or an Azure deployment)
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"

    # gemini-flash-1.5: Generative Language API
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"

    # Streaming
    provider_timeout_seconds: int = 30
    provider_max_retries: int = Field(default=1, ge=0)
    stream_inactivity_timeout_seconds: float = 60.0
    scroll_anchor_threshold: float = 200.0
    default_system_prompt: str = "You are a helpful assistant."

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        environment = v.strip().lower()
        if environment not in ENVIRONMENTS:
            raise ValueError(f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}")
        return environment

    @field_validator(
        "provider_timeout_seconds",
        "stream_inactivity_timeout_seconds",
        "scroll_anchor_threshold",
    )
    @classmethod
    def validate_positive(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name.upper()} must be positive")
        return v


@lru_cache
def get_settings() -> Settings:
    """Settings from the process environment, read once."""
    return Settings()
